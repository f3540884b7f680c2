"""Shared test helpers: user registration and transaction payloads."""

from __future__ import annotations

from datetime import datetime, timedelta

from fastapi.testclient import TestClient

BASE_DATE = datetime(2024, 1, 1, 12, 0, 0)


def day(n: int) -> datetime:
    return BASE_DATE + timedelta(days=n)


def tx_fields(amount=10.0, tx_type="expense", category="Groceries", description="Weekly shop", date=None) -> dict:
    fields = {"amount": amount, "type": tx_type, "category": category, "description": description}
    if date is not None:
        fields["date"] = date
    return fields


def register(client: TestClient, email: str, password: str = "secret123", username: str | None = None) -> dict:
    """Register a user and return bearer auth headers for it."""
    body = {"email": email, "password": password}
    if username:
        body["username"] = username
    resp = client.post("/auth/register", json=body)
    assert resp.status_code == 201, resp.text
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}
