from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import update

from shortlinks.core.setting import settings
from shortlinks.db.models import ShortURL

ALICE = {"X-User-Id": "alice"}
BOB = {"X-User-Id": "bob"}


async def shorten(client, url, headers=ALICE, **extra):
    return await client.post("/api/v1/urls", json={"url": url, **extra}, headers=headers)


class TestCreate:

    @pytest.mark.asyncio
    async def test_create_returns_record_with_metadata(self, client):
        response = await shorten(client, "https://example.com/docs")
        assert response.status_code == 201

        data = response.json()
        assert data["original_url"] == "https://example.com/docs"
        assert len(data["short_code"]) == settings.SHORT_CODE_LENGTH
        assert data["short_url"].endswith("/" + data["short_code"])
        assert data["is_active"] is True
        assert data["is_expired"] is False
        assert data["metadata_status"] == "fetched"
        assert data["metadata"]["title"] == "Example Domain"

    @pytest.mark.asyncio
    async def test_identity_header_is_required(self, client):
        response = await client.post("/api/v1/urls", json={"url": "https://example.com"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [
        {"url": "ftp://example.com/file"},
        {"url": "https://example.com", "custom_code": "ab-12"},
        {"url": "https://example.com", "custom_code": "docs"},
    ])
    async def test_bad_input_is_400(self, client, payload):
        response = await client.post("/api/v1/urls", json=payload, headers=ALICE)
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_expiry_in_past_is_400(self, client):
        past = (datetime.now(timezone.utc) - timedelta(minutes=1)).isoformat()
        response = await shorten(client, "https://example.com", expires_at=past)
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_custom_code_conflict_across_owners(self, client):
        first = await shorten(client, "https://example.com/a", custom_code="abc123")
        second = await shorten(client, "https://example.org/b", headers=BOB, custom_code="abc123")

        assert first.status_code == 201
        assert first.json()["short_code"] == "abc123"
        assert second.status_code == 409

    @pytest.mark.asyncio
    async def test_quota_exceeded_is_429(self, client, monkeypatch):
        monkeypatch.setattr(settings, "MAX_ACTIVE_URLS_PER_USER", 2)

        assert (await shorten(client, "https://example.com/1")).status_code == 201
        assert (await shorten(client, "https://example.com/2")).status_code == 201
        response = await shorten(client, "https://example.com/3")

        assert response.status_code == 429
        assert "2" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_duplicate_url_returns_existing(self, client):
        first = await shorten(client, "https://example.com/same")
        second = await shorten(client, "https://example.com/same")

        assert first.status_code == 201
        assert second.status_code == 200
        assert second.json()["short_code"] == first.json()["short_code"]

    @pytest.mark.asyncio
    async def test_skip_metadata(self, client, fetcher):
        response = await shorten(client, "https://example.com", fetch_metadata=False)
        assert response.json()["metadata_status"] == "skipped"
        assert fetcher.calls == []


class TestRedirect:

    @pytest.mark.asyncio
    async def test_redirects_to_original(self, client):
        await shorten(client, "https://example.com/landing", custom_code="land01")

        response = await client.get("/land01")
        assert response.status_code == 302
        assert response.headers["location"] == "https://example.com/landing"

    @pytest.mark.asyncio
    async def test_unknown_code_is_404(self, client):
        response = await client.get("/zzzzzz")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_expired_code_is_410(self, client, database):
        expires_at = (datetime.now(timezone.utc) + timedelta(hours=1)).isoformat()
        await shorten(client, "https://example.com", custom_code="old123", expires_at=expires_at)

        async with database.session() as session:
            await session.execute(
                update(ShortURL)
                .where(ShortURL.short_code == "old123")
                .values(expires_at=datetime.now(timezone.utc) - timedelta(seconds=1))
            )
            await session.commit()

        response = await client.get("/old123")
        assert response.status_code == 410

        resolved = await client.get("/api/v1/resolve/old123")
        assert resolved.status_code == 410
        assert resolved.json()["status"] == "expired"

    @pytest.mark.asyncio
    async def test_deleted_code_is_404_and_never_reissued(self, client):
        created = (await shorten(client, "https://example.com", custom_code="del123")).json()

        response = await client.delete(f"/api/v1/urls/{created['id']}", headers=ALICE)
        assert response.status_code == 204

        assert (await client.get("/del123")).status_code == 404
        again = await shorten(client, "https://example.com/new", custom_code="del123")
        assert again.status_code == 409

    @pytest.mark.asyncio
    async def test_resolve_returns_metadata(self, client):
        await shorten(client, "https://example.com/page", custom_code="meta01")

        response = await client.get("/api/v1/resolve/meta01")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "found"
        assert data["original_url"] == "https://example.com/page"
        assert data["metadata"]["image_url"] == "https://example.com/og.png"

    @pytest.mark.asyncio
    async def test_health_routes_are_not_short_codes(self, client):
        assert (await client.get("/health")).json() == {"status": "healthy"}


class TestManage:

    @pytest.mark.asyncio
    async def test_list_only_shows_own_active_urls(self, client):
        mine = (await shorten(client, "https://example.com/1")).json()
        await shorten(client, "https://example.com/2")
        await shorten(client, "https://example.org/x", headers=BOB)
        await client.delete(f"/api/v1/urls/{mine['id']}", headers=ALICE)

        active = (await client.get("/api/v1/urls", headers=ALICE)).json()["items"]
        everything = (await client.get("/api/v1/urls?include_inactive=true", headers=ALICE)).json()["items"]

        assert [item["original_url"] for item in active] == ["https://example.com/2"]
        assert len(everything) == 2

    @pytest.mark.asyncio
    async def test_other_users_record_is_forbidden(self, client):
        created = (await shorten(client, "https://example.com")).json()

        assert (await client.get(f"/api/v1/urls/{created['id']}", headers=BOB)).status_code == 403
        assert (await client.delete(f"/api/v1/urls/{created['id']}", headers=BOB)).status_code == 403
        assert (await client.get("/api/v1/urls/9999", headers=ALICE)).status_code == 404

    @pytest.mark.asyncio
    async def test_patch_metadata_updates_only_given_fields(self, client):
        created = (await shorten(client, "https://example.com")).json()

        response = await client.patch(
            f"/api/v1/urls/{created['id']}/metadata",
            json={"title": "  My link  "},
            headers=ALICE,
        )
        assert response.status_code == 200
        assert response.json()["title"] == "My link"
        assert response.json()["image_url"] == "https://example.com/og.png"

        record = (await client.get(f"/api/v1/urls/{created['id']}", headers=ALICE)).json()
        assert record["has_custom_metadata"] is True
        assert record["metadata"]["title"] == "My link"

    @pytest.mark.asyncio
    async def test_patch_rejects_bad_image_url(self, client):
        created = (await shorten(client, "https://example.com")).json()
        response = await client.patch(
            f"/api/v1/urls/{created['id']}/metadata",
            json={"image_url": "javascript:alert(1)"},
            headers=ALICE,
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_refresh_keeps_custom_metadata_unless_forced(self, client):
        created = (await shorten(client, "https://example.com")).json()
        url = f"/api/v1/urls/{created['id']}/metadata"
        await client.patch(url, json={"title": "Mine"}, headers=ALICE)

        kept = await client.post(f"{url}/refresh", headers=ALICE)
        forced = await client.post(f"{url}/refresh?force=true", headers=ALICE)

        assert kept.json()["title"] == "Mine"
        assert forced.json()["title"] == "Example Domain"

    @pytest.mark.asyncio
    async def test_quota_endpoint(self, client):
        await shorten(client, "https://example.com/1")

        data = (await client.get("/api/v1/me", headers=ALICE)).json()
        assert data["active_urls"] == 1
        assert data["max_active_urls"] == settings.MAX_ACTIVE_URLS_PER_USER
        assert data["remaining"] == settings.MAX_ACTIVE_URLS_PER_USER - 1

    @pytest.mark.asyncio
    async def test_delete_account_removes_links(self, client):
        await shorten(client, "https://example.com", custom_code="acct01")

        assert (await client.delete("/api/v1/me", headers=ALICE)).status_code == 204
        assert (await client.get("/acct01")).status_code == 404
        assert (await client.delete("/api/v1/me", headers=ALICE)).status_code == 404
