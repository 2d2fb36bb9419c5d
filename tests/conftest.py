"""Shared recording fixtures."""

import pytest

USR = "/app/con[0]/ses[0]/wnd[0]/usr/"
TBAR = "/app/con[0]/ses[0]/wnd[0]/tbar[1]/"
POPUP = "/app/con[0]/ses[0]/wnd[1]/usr/"


@pytest.fixture
def legacy_recording():
    return {
        "Tcode": "ZT",
        "Steps": [
            {
                "Action": "input",
                "ControlId": USR + "ctxtF1",
                "ControlName": "ctxtF1",
                "ControlType": "GuiTextField",
                "Value": "100",
            },
            {"Action": "click", "ControlId": TBAR + "btn[8]", "ControlType": "GuiButton"},
        ],
    }


@pytest.fixture
def contextual_recording():
    return {
        "$meta": {"tcode": "ZC", "version": "2.0"},
        "targetContext": {"window": "main"},
        "steps": {
            "ctxA": {"fill": {"action": "set", "target": USR + "ctxtA", "paramKey": "A", "next": "ctxB.go"}},
            "ctxB": {"go": {"action": "click", "target": TBAR + "btn[8]", "next": "end"}},
        },
    }


@pytest.fixture
def steps_only_recording():
    return {
        "steps": {
            "open": {"action": "callProgram", "method": "sapSession.StartTransaction", "next": "press"},
            "press": {"action": "click", "target": USR + "btnGO", "next": "end", "note": "kept"},
            "end": {"action": "exit"},
        }
    }
