"""Tests for settings."""

from __future__ import annotations

from firewatch.config import Settings


def test_default_contacts():
    assert Settings().contacts == (
        "BFP: (049) 808-1234",
        "Police: (049) 808-5678",
        "Hospital: (049) 808-9012",
    )


def test_contacts_from_environment(monkeypatch):
    monkeypatch.setenv("FIREWATCH_EMERGENCY_CONTACTS", " BFP: 117 ;; Police: 911 ; ")
    assert Settings().contacts == ("BFP: 117", "Police: 911")


def test_empty_contacts(monkeypatch):
    monkeypatch.setenv("FIREWATCH_EMERGENCY_CONTACTS", "")
    assert Settings().contacts == ()
