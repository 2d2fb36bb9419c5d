"""Test event grouping, parameter keys and per-format normalization."""

import pytest

from sapflow.compiler.errors import MalformedInputError
from sapflow.compiler.models import ContextualRecording, LegacyRecording, StepsOnlyRecording
from sapflow.compiler.normalizer import (
    extract_control_name,
    generate_param_key,
    group_events,
    normalize,
)

USR = "/app/con[0]/ses[0]/wnd[0]/usr/"


def test_consecutive_inputs_on_same_control_collapse():
    """Latest value wins when the same field is typed into twice."""
    groups = group_events(
        [
            {"Action": "input", "ControlId": USR + "ctxtF1", "Value": "A"},
            {"Action": "input", "ControlId": USR + "ctxtF1", "Value": "B"},
        ]
    )
    assert len(groups) == 1
    assert groups[0]["value"] == "B"


def test_click_after_input_starts_new_group():
    groups = group_events(
        [
            {"Action": "input", "ControlId": USR + "ctxtF1", "Value": "A"},
            {"Action": "click", "ControlId": USR + "ctxtF1"},
        ]
    )
    assert [g["action"] for g in groups] == ["input", "click"]


def test_repeated_clicks_never_merge():
    groups = group_events([{"Action": "click", "ControlId": USR + "btnX"}] * 2)
    assert len(groups) == 2


def test_events_without_action_or_control_are_dropped():
    groups = group_events([{"Action": "input"}, {"ControlId": USR + "x"}, "junk"])
    assert groups == []


def test_param_key_derivation():
    assert generate_param_key("ctxtF1") == "F1"
    assert generate_param_key("ctxtS_MATNR-LOW") == "SMatnrLow"
    assert generate_param_key("txtP_DATE-HIGH") == "PDateHigh"
    assert generate_param_key("txtCustomer_Id") == "CustomerId"


def test_param_key_is_idempotent_on_clean_names():
    assert generate_param_key("CustomerId") == "CustomerId"
    assert generate_param_key(generate_param_key("ctxtS_MATNR-LOW")) == "SMatnrLow"


def test_extract_control_name():
    assert extract_control_name(USR + "ctxtF1") == "F1"
    assert extract_control_name(USR + "btnGO") == "btnGO"


def test_legacy_normalization_wraps_steps(legacy_recording):
    transaction = normalize(LegacyRecording(document=legacy_recording, tcode="fallback"))

    assert transaction.tcode == "zt"
    assert [s.id for s in transaction.steps] == ["startTransaction", "step1", "step2", "end"]
    start, fill, press, end = transaction.steps
    assert start.action == "callProgram" and start.next == "step1"
    assert fill.action == "set" and fill.param_key == "F1" and fill.param_value == "100"
    assert press.action == "click" and press.next == "end"
    assert end.action == "exit" and end.next is None
    assert transaction.control_kinds == ["GuiTextField", "GuiButton"]
    assert len(transaction.controls) == 2


def test_checkbox_values_become_booleans():
    document = {
        "Steps": [
            {"Action": "set", "ControlId": USR + "chkP_TEST", "ControlType": "GuiCheckBox", "Value": "true"},
            {"Action": "uncheck", "ControlId": USR + "chkP_OTHER", "ControlType": "GuiCheckBox"},
        ]
    }
    transaction = normalize(LegacyRecording(document=document, tcode="zb"))
    first, second = transaction.steps[1:3]
    assert first.param_value is True and first.is_checkbox
    assert second.param_value is False


def test_empty_value_input_has_no_parameter():
    document = {"Steps": [{"Action": "input", "ControlId": USR + "ctxtF1", "Value": ""}]}
    step = normalize(LegacyRecording(document=document, tcode="ze")).steps[1]
    assert step.param_key is None
    assert step.param_value is None


def test_empty_steps_still_synthesize_start_and_end():
    transaction = normalize(LegacyRecording(document={"Steps": []}, tcode="zz"))
    assert [s.id for s in transaction.steps] == ["startTransaction", "end"]
    assert transaction.steps[0].next == "end"


def test_malformed_legacy_documents_raise():
    with pytest.raises(MalformedInputError):
        normalize(LegacyRecording(document=[1, 2], tcode="zx"))
    with pytest.raises(MalformedInputError) as exc_info:
        normalize(LegacyRecording(document={"Steps": "nope"}, tcode="zx"))
    assert exc_info.value.tcode == "zx"


def test_steps_only_keeps_ids_and_fields(steps_only_recording):
    transaction = normalize(StepsOnlyRecording(document=steps_only_recording, tcode="ZS"))
    assert transaction.tcode == "zs"
    assert [s.id for s in transaction.steps] == ["open", "press", "end"]
    assert transaction.steps[1].fields == {"target": USR + "btnGO", "next": "end", "note": "kept"}
    assert USR + "btnGO" in transaction.controls


def test_contextual_flattens_contexts_behind_start(contextual_recording):
    transaction = normalize(ContextualRecording(document=contextual_recording, tcode="file"))
    assert transaction.tcode == "zc"
    assert [s.id for s in transaction.steps] == ["startTransaction", "ctxA.fill", "ctxB.go"]
    assert transaction.steps[0].next == "ctxA.fill"
    assert transaction.steps[1].context == "ctxA" and transaction.steps[1].name == "fill"


def test_contextual_without_steps_points_start_at_end():
    transaction = normalize(ContextualRecording(document={"$meta": {}}, tcode="zc"))
    assert transaction.steps[0].next == "end"


def test_non_text_control_type_is_rejected():
    document = {"Steps": [{"Action": "click", "ControlId": USR + "btnGO", "ControlType": ["GuiButton"]}]}
    with pytest.raises(MalformedInputError) as exc_info:
        normalize(LegacyRecording(document=document, tcode="zx"))
    assert "ControlType" in str(exc_info.value)


def test_context_named_like_start_step_is_rejected():
    """The synthesized start step owns the `startTransaction` key."""
    document = {"$meta": {"tcode": "ZC"}, "steps": {"startTransaction": {"go": {"action": "click", "next": "end"}}}}
    with pytest.raises(MalformedInputError) as exc_info:
        normalize(ContextualRecording(document=document, tcode="zc"))
    assert exc_info.value.tcode == "zc"
