from unittest.mock import patch

from fastapi import status
from sqlalchemy.exc import OperationalError


def test_root_returns_ok(client):
    response = client.get("/")
    assert response.status_code == status.HTTP_200_OK
    payload = response.json()
    assert payload["status"] == "ok"
    assert payload["service"] == "Payout Portal Auth API"


def test_health_returns_ok(client):
    response = client.get("/health")
    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"status": "ok"}


def test_database_outage_returns_503(client):
    error = OperationalError("SELECT 1", {}, Exception("could not connect to server"))
    with patch("app.services.credential_store.find_by_email", side_effect=error):
        response = client.post("/api/auth/login", json={"email": "test@example.com", "password": "Passw0rd!"})

    assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
    assert response.json() == {"detail": "Service temporarily unavailable"}


def test_redis_outage_returns_503(client, fake_redis):
    from redis.exceptions import ConnectionError as RedisConnectionError

    with patch.object(fake_redis, "pipeline", side_effect=RedisConnectionError("refused")):
        response = client.post("/api/auth/login", json={"email": "test@example.com", "password": "Passw0rd!"})

    assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
    assert response.json() == {"detail": "Service temporarily unavailable"}
