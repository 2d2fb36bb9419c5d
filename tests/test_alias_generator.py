"""Test prefix consolidation, alias naming and shared-namespace promotion."""

from sapflow.compiler.alias_generator import (
    DEFAULT_PREFIXES,
    apply_prefixes,
    consolidate_prefixes,
    expand_alias,
    generate_alias_name,
    generate_aliases,
    resolve_alias,
)
from sapflow.compiler.models import ControlInfo, LegacyRecording
from sapflow.compiler.normalizer import normalize
from sapflow.compiler.path_patterns import analyze_path_patterns, extract_prefixes, is_main_prefix

USR = "/app/con[0]/ses[0]/wnd[0]/usr/"
TBAR = "/app/con[0]/ses[0]/wnd[0]/tbar[1]/"
POPUP = "/app/con[0]/ses[0]/wnd[1]/usr/"


def _transaction(tcode, *control_ids):
    document = {
        "Tcode": tcode,
        "Steps": [{"Action": "click", "ControlId": control_id} for control_id in control_ids],
    }
    return analyze_path_patterns(normalize(LegacyRecording(document=document, tcode=tcode)))


def test_alias_names_follow_control_kind():
    assert generate_alias_name(TBAR + "btn[8]") == "variant.execBtn"
    assert generate_alias_name(POPUP + "btn[0]") == "popup.accept"
    assert generate_alias_name(TBAR + "btn[3]") == "button.btn3"
    assert generate_alias_name(USR + "ctxtS_MATNR-LOW") == "filter.s_matnrLow"
    assert generate_alias_name(USR + "chkP_TEST") == "filter.p_test"
    assert generate_alias_name(USR + "cntlGRID/shellcont/shell") == "gridResult"
    assert generate_alias_name(USR + "lblTitle") == "control.lblTitle"


def test_alias_name_uses_registered_kind():
    control = ControlInfo(display_name="Run", control_kind="GuiButton")
    assert generate_alias_name(USR + "subRUN", control) == "button.subRUN"


def test_popup_window_is_not_taken_as_main_prefix():
    assert extract_prefixes(POPUP + "ctxtX")[0] == POPUP
    assert not is_main_prefix(POPUP)
    assert is_main_prefix(USR)


def test_prefixes_default_when_not_observed():
    prefixes = consolidate_prefixes([_transaction("za", TBAR + "btn[8]")])
    assert prefixes == DEFAULT_PREFIXES


def test_prefixes_come_from_observed_paths():
    observed = "/app/con[1]/ses[0]/wnd[0]/usr/"
    prefixes = consolidate_prefixes([_transaction("za", observed + "ctxtF1")])
    assert prefixes["usr"] == observed
    assert prefixes["popup"] == DEFAULT_PREFIXES["popup"]


def test_apply_and_expand_prefixes_are_inverse():
    path = USR + "ctxtF1"
    processed = apply_prefixes(path, DEFAULT_PREFIXES)
    assert processed == "{{usr}}ctxtF1"
    assert expand_alias(processed, DEFAULT_PREFIXES) == path
    assert apply_prefixes(TBAR + "btn[8]", DEFAULT_PREFIXES) == TBAR + "btn[8]"


def test_aliases_are_attached_to_steps_by_exact_path():
    transaction = _transaction("za", USR + "ctxtF1", USR + "ctxtF10")
    table = generate_aliases({"za": transaction})

    assert table.aliases["za"] == {"filter.f1": "{{usr}}ctxtF1", "filter.f10": "{{usr}}ctxtF10"}
    assert [s.alias for s in transaction.steps[1:3]] == ["filter.f1", "filter.f10"]


def test_same_name_collision_within_transaction_gets_suffix():
    transaction = _transaction("za", USR + "ctxtF1", USR + "sub/ctxtF1")
    table = generate_aliases({"za": transaction})
    assert table.aliases["za"] == {"filter.f1": "{{usr}}ctxtF1", "filter.f12": "{{usr}}sub/ctxtF1"}


def test_shared_alias_is_promoted_to_main():
    """A name defined by two transactions with the same path moves to main."""
    t1 = _transaction("t1", TBAR + "btn[8]", USR + "ctxtA")
    t2 = _transaction("t2", TBAR + "btn[8]", USR + "ctxtB")
    table = generate_aliases({"t1": t1, "t2": t2})

    assert table.aliases["main"] == {"variant.execBtn": TBAR + "btn[8]"}
    assert "variant.execBtn" not in table.aliases["t1"]
    assert "variant.execBtn" not in table.aliases["t2"]
    assert table.aliases["t1"] == {"filter.a": "{{usr}}ctxtA"}
    assert table.aliases["t2"] == {"filter.b": "{{usr}}ctxtB"}
    assert table.conflicts == {}


def test_conflicting_alias_stays_per_transaction():
    t1 = _transaction("t1", USR + "ctxtF1")
    t2 = _transaction("t2", USR + "sub/ctxtF1")
    table = generate_aliases({"t1": t1, "t2": t2})

    assert table.aliases["main"] == {}
    assert table.aliases["t1"]["filter.f1"] == "{{usr}}ctxtF1"
    assert table.aliases["t2"]["filter.f1"] == "{{usr}}sub/ctxtF1"
    assert table.conflicts == {"filter.f1": {"t1": "{{usr}}ctxtF1", "t2": "{{usr}}sub/ctxtF1"}}


def test_resolve_alias_checks_transaction_then_main():
    t1 = _transaction("t1", TBAR + "btn[8]", USR + "ctxtA")
    t2 = _transaction("t2", TBAR + "btn[8]")
    table = generate_aliases({"t1": t1, "t2": t2})

    assert resolve_alias(table, "filter.a", "t1") == USR + "ctxtA"
    assert resolve_alias(table, "variant.execBtn", "t2") == TBAR + "btn[8]"
    assert resolve_alias(table, "filter.a", "t2") is None
