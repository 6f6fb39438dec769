"""
End-to-end tests through the FastAPI application.
"""

from decimal import Decimal
from unittest.mock import patch

from fastapi import FastAPI
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from httpx import ASGITransport, AsyncClient

from paperfolio.config.settings import settings
from paperfolio.database.models import Role
from paperfolio.dependencies.auth import create_access_token
from paperfolio.dependencies.services import get_price_service
from paperfolio.services.passcodes import PasscodeService

PASSCODE = "open-sesame"


class TestHealth:
    async def test_liveness_and_readiness(self, api_client):
        live = await api_client.get("/live")
        ready = await api_client.get("/ready")

        assert live.status_code == 200
        assert live.json()["alive"] is True
        assert ready.json()["ready"] is True

    async def test_root(self, api_client):
        response = await api_client.get("/")
        assert response.status_code == 200


class TestAuthFlow:
    async def test_register_login_refresh_logout(self, api_client, session):
        await PasscodeService(session).seed(PASSCODE)
        await session.commit()

        registered = await api_client.post(
            "/api/auth/register",
            json={"username": "bob", "password": "password123", "passcode": PASSCODE},
        )
        assert registered.status_code == 201
        assert set(registered.json()["roles"]) == {"ROLE_USER", "ROLE_ADMIN"}

        login = await api_client.post(
            "/api/auth/login",
            json={"username": "bob", "password": "password123", "role": "admin"},
        )
        assert login.status_code == 200
        tokens = login.json()
        assert tokens["authenticated_as"] == "ROLE_ADMIN"

        refreshed = await api_client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert refreshed.status_code == 200

        reused = await api_client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert reused.status_code == 401
        assert set(reused.json()) == {"error", "detail"}

        logout = await api_client.post(
            "/api/auth/logout", json={"refresh_token": refreshed.json()["refresh_token"]}
        )
        assert logout.status_code == 204

    async def test_register_with_wrong_passcode(self, api_client, session):
        await PasscodeService(session).seed(PASSCODE)
        await session.commit()

        response = await api_client.post(
            "/api/auth/register",
            json={"username": "bob", "password": "password123", "passcode": "guess"},
        )

        assert response.status_code == 403
        assert response.json()["error"] == "Invalid passcode"

    async def test_login_failure(self, api_client, make_user, session):
        await make_user("carol")
        await session.commit()

        response = await api_client.post(
            "/api/auth/login", json={"username": "carol", "password": "wrong-password1"}
        )

        assert response.status_code == 401


class TestProtectedRoutes:
    async def test_missing_token(self, api_client):
        response = await api_client.get("/api/symbols")
        assert response.status_code == 401

    async def test_garbage_token(self, api_client):
        response = await api_client.get("/api/symbols", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401

    async def test_admin_route_rejects_user_session(self, api_client, make_user, session, auth_headers):
        user = await make_user("root", roles=[Role.ROLE_USER.value, Role.ROLE_ADMIN.value])
        await session.commit()

        as_user = await api_client.post(
            f"/api/wallet/{user.id}/add-cash",
            json={"amount": "100.00"},
            headers=auth_headers(user, Role.ROLE_USER),
        )
        as_admin = await api_client.post(
            f"/api/wallet/{user.id}/add-cash",
            json={"amount": "100.00"},
            headers=auth_headers(user, Role.ROLE_ADMIN),
        )

        assert as_user.status_code == 403
        assert as_admin.status_code == 200
        assert as_admin.json()["cash_balance"] == "10100.00"

    async def test_domain_error_shape(self, api_client, make_user, session, auth_headers):
        user = await make_user()
        await session.commit()

        response = await api_client.get("/api/wallet/999/balance", headers=auth_headers(user))

        assert response.status_code == 404
        assert set(response.json()) == {"error", "detail"}


class TestTradingApi:
    async def test_buy_and_sell(self, api_client, make_user, make_symbol, session, auth_headers, price_service):
        from paperfolio.app import app

        user = await make_user()
        await make_symbol("AAPL")
        await session.commit()
        price_service.set_price("AAPL", 150)
        app.dependency_overrides[get_price_service] = lambda: price_service
        headers = auth_headers(user)

        bought = await api_client.post(
            f"/api/trades/{user.id}/buy", json={"symbol": "AAPL", "quantity": 10}, headers=headers
        )
        assert bought.status_code == 200
        assert bought.json()["cash_balance"] == "8500.00"
        assert bought.json()["transaction"]["type"] == "BUY"

        too_many = await api_client.post(
            f"/api/trades/{user.id}/sell", json={"symbol": "AAPL", "quantity": 11}, headers=headers
        )
        assert too_many.status_code == 400

        history = await api_client.get(f"/api/trades/{user.id}/history", headers=headers)
        assert [t["type"] for t in history.json()] == ["BUY"]

    async def test_invalid_quantity(self, api_client, make_user, session, auth_headers):
        user = await make_user()
        await session.commit()

        response = await api_client.post(
            f"/api/trades/{user.id}/buy", json={"symbol": "AAPL", "quantity": 0}, headers=auth_headers(user)
        )

        assert response.status_code == 422

    async def test_price_moved_is_conflict(
        self, api_client, make_user, make_symbol, session, auth_headers, price_service
    ):
        from paperfolio.app import app

        user = await make_user()
        await make_symbol("AAPL")
        await session.commit()
        price_service.set_price("AAPL", 150)
        app.dependency_overrides[get_price_service] = lambda: price_service

        with patch.object(settings.trading, "slippage_tolerance_pct", Decimal("1")):
            response = await api_client.post(
                f"/api/trades/{user.id}/buy",
                json={"symbol": "AAPL", "quantity": 1, "expected_price": "140"},
                headers=auth_headers(user),
            )

        assert response.status_code == 409
        assert set(response.json()) == {"error", "detail"}
        assert response.json()["error"] == "Price moved"

        balance = await api_client.get(f"/api/wallet/{user.id}/balance", headers=auth_headers(user))
        assert balance.json()["cash_balance"] == "10000.00"


class TestSymbolsApi:
    async def test_list_symbols(self, api_client, make_user, make_symbol, session, auth_headers):
        user = await make_user()
        await make_symbol("AAPL", name="Apple Inc")
        await make_symbol("MSFT", name="Microsoft Corp")
        await session.commit()

        response = await api_client.get("/api/symbols", params={"q": "apple"}, headers=auth_headers(user))

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 1
        assert body["items"][0]["symbol"] == "AAPL"


class TestStreamApi:
    async def test_requires_token(self, api_client):
        response = await api_client.get("/api/stream/prices", params={"symbols": "AAPL"})
        assert response.status_code == 401

    async def test_empty_symbols_yields_error_event(self, api_client):
        token = create_access_token(1, "bob", Role.ROLE_USER.value)

        response = await api_client.get("/api/stream/prices", params={"symbols": " , ", "token": token})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache"
        assert response.text.startswith("event: error\n")
        assert '"status":400' in response.text

    async def test_event_stream_is_not_compressed(self):
        """The app's gzip settings compress JSON but leave text/event-stream alone."""
        from paperfolio.app import app

        gzip = next(m for m in app.user_middleware if m.cls is GZipMiddleware)
        mirror = FastAPI()
        mirror.add_middleware(GZipMiddleware, *gzip.args, **gzip.kwargs)

        @mirror.get("/json")
        async def as_json():
            return JSONResponse({"padding": "x" * 4096})

        @mirror.get("/events")
        async def as_events():
            async def frames():
                for _ in range(64):
                    yield "event: heartbeat\ndata: {}\n\n"
            return StreamingResponse(frames(), media_type="text/event-stream")

        async with AsyncClient(transport=ASGITransport(app=mirror), base_url="http://test") as client:
            compressed = await client.get("/json", headers={"Accept-Encoding": "gzip"})
            streamed = await client.get("/events", headers={"Accept-Encoding": "gzip"})

        assert compressed.headers["content-encoding"] == "gzip"
        assert "content-encoding" not in streamed.headers
        assert streamed.text.count("event: heartbeat") == 64


class TestUsersApi:
    async def test_missing_mystery_page(self, api_client, make_user, session, auth_headers):
        user = await make_user()
        await session.commit()

        response = await api_client.get(f"/api/users/{user.id}/mystery-page", headers=auth_headers(user))

        assert response.status_code == 404
        assert response.json() == {
            "error": "Mystery page not found",
            "detail": f"No mystery page for user {user.id}",
        }


class TestMarketApi:
    async def test_unknown_quote(self, api_client, make_user, session, auth_headers, price_service):
        from paperfolio.app import app

        user = await make_user()
        await session.commit()
        app.dependency_overrides[get_price_service] = lambda: price_service

        response = await api_client.get("/api/prices/current/zzzz", headers=auth_headers(user))

        assert response.status_code == 404
        assert response.json() == {"error": "Quote not found", "detail": "No current price for ZZZZ"}
