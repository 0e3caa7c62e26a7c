"""Tests for the HTTP surface."""

import asyncio
import base64

import pytest


@pytest.mark.asyncio
class TestPublicEndpoints:
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "env": "dev"}

    async def test_shorten(self, client):
        response = await client.post("/api/shorten", json={"url": "https://example.com/long"})

        assert response.status_code == 200
        data = response.json()
        assert data["short_url"] == f"http://testserver/{data['short_code']}"
        assert "qr_code" not in data

    async def test_shorten_is_idempotent(self, client):
        first = await client.post("/api/shorten", json={"url": "https://example.com/long"})
        second = await client.post("/api/shorten", json={"url": "https://example.com/long"})

        assert first.json()["short_url"] == second.json()["short_url"]

    async def test_shorten_with_qr(self, client):
        response = await client.post(
            "/api/shorten", json={"url": "https://example.com/long", "with_qr": True}
        )

        qr = response.json()["qr_code"]
        assert qr.startswith("data:image/png;base64,")
        assert base64.b64decode(qr.split(",", 1)[1]).startswith(b"\x89PNG")

    async def test_shorten_survives_qr_failure(self, client, monkeypatch):
        def broken(data):
            raise RuntimeError("no PIL")

        monkeypatch.setattr("shortlinks.qr_utils.generate_qr_data_url", broken)

        response = await client.post(
            "/api/shorten", json={"url": "https://example.com/long", "with_qr": True}
        )

        assert response.status_code == 200
        assert "qr_code" not in response.json()

    async def test_shorten_custom_code(self, client):
        first = await client.post("/api/shorten", json={"url": "https://a.com", "short_code": "abc"})
        second = await client.post("/api/shorten", json={"url": "https://b.com", "short_code": "abc"})

        assert first.status_code == 200
        assert first.json()["short_url"] == "http://testserver/abc"
        assert second.status_code == 409

    @pytest.mark.parametrize(
        "body",
        [
            {"url": "ftp://x.com"},
            {"url": "https://x.com", "short_code": "ab"},
            {"url": "https://x.com", "short_code": "a b"},
        ],
    )
    async def test_shorten_validation(self, client, body):
        response = await client.post("/api/shorten", json=body)

        assert response.status_code == 400
        assert response.json()["detail"]

    async def test_redirect(self, client):
        created = await client.post(
            "/api/shorten", json={"url": "https://example.com/target", "short_code": "go1"}
        )
        assert created.status_code == 200

        response = await client.get("/go1", follow_redirects=False)

        assert response.status_code == 302
        assert response.headers["location"] == "https://example.com/target"

    @pytest.mark.parametrize("path", ["/nothere", "/x", "/waytoolongcode"])
    async def test_redirect_not_found(self, client, path):
        response = await client.get(path, follow_redirects=False)

        assert response.status_code == 404

    async def test_qr_endpoint(self, client):
        await client.post("/api/shorten", json={"url": "https://example.com/a", "short_code": "qrme"})

        response = await client.get("/qr/qrme")
        missing = await client.get("/qr/nope")

        assert response.status_code == 200
        assert base64.b64decode(response.json()["qr_base64"]).startswith(b"\x89PNG")
        assert missing.status_code == 404


@pytest.mark.asyncio
class TestAuth:
    async def test_admin_requires_token(self, client):
        response = await client.get("/api/admin/links")

        assert response.status_code == 401

    async def test_bad_token(self, client):
        response = await client.get(
            "/api/admin/links", headers={"Authorization": "Bearer not-a-jwt"}
        )

        assert response.status_code == 401

    async def test_wrong_password(self, client):
        response = await client.post("/login", data={"username": "admin", "password": "nope"})

        assert response.status_code == 400

    async def test_login_cookie_grants_access(self, client):
        login = await client.post("/login", data={"username": "admin", "password": "s3cret"})
        assert login.status_code == 200
        assert "access_token" in login.cookies

        response = await client.get("/api/admin/links")
        assert response.status_code == 200

        await client.post("/logout")
        client.cookies.clear()
        assert (await client.get("/api/admin/links")).status_code == 401


@pytest.mark.asyncio
class TestAdminLinks:
    async def test_crud_flow(self, client, admin_headers):
        created = await client.post(
            "/api/admin/links",
            json={"url": "https://example.com/a", "short_code": "adm"},
            headers=admin_headers,
        )
        assert created.status_code == 201
        link = created.json()
        assert link["short_code"] == "adm"
        assert link["visit_count"] == 0

        fetched = await client.get(f"/api/admin/links/{link['id']}", headers=admin_headers)
        assert fetched.json() == link

        updated = await client.put(
            f"/api/admin/links/{link['id']}",
            json={"url": "https://example.com/b", "short_code": "adm2"},
            headers=admin_headers,
        )
        assert updated.status_code == 200
        assert updated.json()["original_url"] == "https://example.com/b"
        assert updated.json()["short_code"] == "adm2"

        deleted = await client.delete(f"/api/admin/links/{link['id']}", headers=admin_headers)
        assert deleted.status_code == 200
        assert deleted.json()["ok"] is True

        gone = await client.delete(f"/api/admin/links/{link['id']}", headers=admin_headers)
        assert gone.status_code == 404

    async def test_update_conflict_and_missing(self, client, admin_headers):
        await client.post("/api/admin/links", json={"url": "https://a.com", "short_code": "aaa"}, headers=admin_headers)
        b = await client.post("/api/admin/links", json={"url": "https://b.com", "short_code": "bbb"}, headers=admin_headers)

        conflict = await client.put(
            f"/api/admin/links/{b.json()['id']}", json={"short_code": "aaa"}, headers=admin_headers
        )
        missing = await client.put(
            "/api/admin/links/99999", json={"url": "https://c.com"}, headers=admin_headers
        )

        assert conflict.status_code == 409
        assert missing.status_code == 404

    async def test_list_with_search_and_pages(self, client, admin_headers):
        for i in range(12):
            await client.post(
                "/api/admin/links", json={"url": f"https://example.com/{i}"}, headers=admin_headers
            )
        await client.post(
            "/api/admin/links", json={"url": "https://needle.io/x", "short_code": "pin"}, headers=admin_headers
        )

        page = await client.get(
            "/api/admin/links", params={"page": 2, "page_size": 5}, headers=admin_headers
        )
        found = await client.get("/api/admin/links", params={"search": "needle"}, headers=admin_headers)
        bad_sort = await client.get("/api/admin/links", params={"sort_by": "nope"}, headers=admin_headers)

        data = page.json()
        assert data["total"] == 13
        assert data["total_pages"] == 3
        assert data["page"] == 2
        assert len(data["links"]) == 5
        assert [l["short_code"] for l in found.json()["links"]] == ["pin"]
        assert bad_sort.status_code == 400

    async def test_batch_delete(self, client, admin_headers):
        link = await client.post(
            "/api/admin/links", json={"url": "https://example.com/a"}, headers=admin_headers
        )

        response = await client.request(
            "DELETE",
            "/api/admin/links",
            json={"ids": [link.json()["id"], 424242]},
            headers=admin_headers,
        )
        empty = await client.request("DELETE", "/api/admin/links", json={"ids": []}, headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["count"] == 1
        assert empty.status_code == 422

    async def test_visits_are_counted(self, client, admin_headers, app):
        link = (
            await client.post(
                "/api/admin/links", json={"url": "https://example.com/hit"}, headers=admin_headers
            )
        ).json()

        responses = await asyncio.gather(
            *(client.get(f"/{link['short_code']}", follow_redirects=False) for _ in range(10))
        )
        assert all(r.status_code == 302 for r in responses)

        await app.state.service.drain()
        fetched = await client.get(f"/api/admin/links/{link['id']}", headers=admin_headers)
        assert fetched.json()["visit_count"] == 10
