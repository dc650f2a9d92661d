"""Tests for configuration helpers."""

from __future__ import annotations

import settings


def test_service_principal_requires_all_variables(monkeypatch) -> None:
    monkeypatch.setenv("AZURE_TENANT_ID", "tenant")
    monkeypatch.setenv("AZURE_CLIENT_ID", "client")
    monkeypatch.delenv("AZURE_CLIENT_SECRET", raising=False)

    assert settings.has_service_principal_credentials() is False

    monkeypatch.setenv("AZURE_CLIENT_SECRET", "secret")

    assert settings.has_service_principal_credentials() is True
