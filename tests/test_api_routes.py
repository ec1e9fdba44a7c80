"""Tests for the Help Center HTTP API against an in-memory storage."""

from __future__ import annotations

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from helpcenter.api.api_keys import generate_api_key, hash_api_key
from helpcenter.api.routes.integrations import get_servicenow_factory
from helpcenter.config.settings import settings
from helpcenter.integrations.email import EmailMessage, EmailProvider, EmailResult, EmailService
from helpcenter.integrations.servicenow import ServiceNowCredentials, ServiceNowService
from helpcenter.main import create_app
from helpcenter.multitenancy.membership import Role
from helpcenter.storage import InMemoryStorage


def client_for(app, user: str | None = None) -> AsyncClient:
    headers = {"X-User-Id": user} if user else {}
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test", headers=headers)


async def setup_kb(user: str = "alice", name: str = "Support"):
    storage = InMemoryStorage()
    kb = await storage.create_knowledge_base(user, name)
    return storage, create_app(storage), kb


async def add_member(storage: InMemoryStorage, kb_id: str, user: str, role: Role) -> None:
    invite = await storage.create_invite(kb_id, f"{user}@example.com", role, "alice")
    await storage.accept_invite(invite.invite_token, user)


# ===========================================================================
# Health
# ===========================================================================


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self):
        app = create_app(InMemoryStorage())
        async with client_for(app) as client:
            resp = await client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"
        assert "X-Request-ID" in resp.headers

    @pytest.mark.asyncio
    async def test_forwarded_request_id_is_echoed(self):
        app = create_app(InMemoryStorage())
        async with client_for(app) as client:
            resp = await client.get("/api/health", headers={"X-Request-ID": "gw-123"})
        assert resp.headers["X-Request-ID"] == "gw-123"


# ===========================================================================
# Knowledge bases
# ===========================================================================


class TestKnowledgeBases:
    @pytest.mark.asyncio
    async def test_requires_identity(self):
        app = create_app(InMemoryStorage())
        async with client_for(app) as client:
            resp = await client.get("/api/knowledge-bases")
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_create_and_list(self):
        app = create_app(InMemoryStorage())
        async with client_for(app, "alice") as client:
            created = await client.post("/api/knowledge-bases", json={"displayName": "Docs"})
            assert created.status_code == 201
            body = created.json()
            assert body["displayName"] == "Docs"
            assert body["role"] == "owner"
            assert body["ownerId"] == "alice"

            listed = await client.get("/api/knowledge-bases")
        assert [kb["id"] for kb in listed.json()] == [body["id"]]

    @pytest.mark.asyncio
    async def test_create_without_name_uses_default(self):
        app = create_app(InMemoryStorage())
        async with client_for(app, "alice") as client:
            resp = await client.post("/api/knowledge-bases", json={})
        assert resp.json()["displayName"] == "My Knowledge Base"

    @pytest.mark.asyncio
    async def test_list_only_own_memberships(self):
        storage, app, kb = await setup_kb()
        await storage.create_knowledge_base("bob", "Bob's")
        async with client_for(app, "alice") as client:
            resp = await client.get("/api/knowledge-bases")
        assert [item["id"] for item in resp.json()] == [kb.id]

    @pytest.mark.asyncio
    async def test_update_by_owner(self):
        _, app, kb = await setup_kb()
        async with client_for(app, "alice") as client:
            resp = await client.put(f"/api/knowledge-bases/{kb.id}", json={"primaryColor": "#112233"})
        assert resp.status_code == 200
        assert resp.json()["primaryColor"] == "#112233"
        assert resp.json()["displayName"] == "Support"

    @pytest.mark.asyncio
    async def test_update_by_viewer_forbidden(self):
        storage, app, kb = await setup_kb()
        await add_member(storage, kb.id, "victor", Role.VIEWER)
        async with client_for(app, "victor") as client:
            resp = await client.put(f"/api/knowledge-bases/{kb.id}", json={"displayName": "Mine"})
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_update_by_non_member_forbidden(self):
        _, app, kb = await setup_kb()
        async with client_for(app, "mallory") as client:
            resp = await client.put(f"/api/knowledge-bases/{kb.id}", json={"displayName": "Mine"})
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_invalid_color_rejected(self):
        _, app, kb = await setup_kb()
        async with client_for(app, "alice") as client:
            resp = await client.put(f"/api/knowledge-bases/{kb.id}", json={"primaryColor": "blue"})
        assert resp.status_code == 422


# ===========================================================================
# Tenant scoping
# ===========================================================================


class TestTenantScoping:
    @pytest.mark.asyncio
    async def test_missing_kb_id(self):
        _, app, _ = await setup_kb()
        async with client_for(app, "alice") as client:
            resp = await client.get("/api/articles")
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_non_member(self):
        _, app, kb = await setup_kb()
        async with client_for(app, "mallory") as client:
            resp = await client.get("/api/articles", params={"kbId": kb.id})
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_missing_identity_checked_first(self):
        _, app, _ = await setup_kb()
        async with client_for(app) as client:
            resp = await client.get("/api/articles")
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_pending_invite_has_no_access(self):
        storage, app, kb = await setup_kb()
        await storage.create_invite(kb.id, "bob@example.com", Role.ADMIN, "alice")
        async with client_for(app, "bob") as client:
            resp = await client.get("/api/articles", params={"kbId": kb.id})
        assert resp.status_code == 403


# ===========================================================================
# Articles and categories
# ===========================================================================


class TestArticles:
    @pytest.mark.asyncio
    async def test_crud(self):
        _, app, kb = await setup_kb()
        params = {"kbId": kb.id}
        async with client_for(app, "alice") as client:
            created = await client.post(
                "/api/articles", params=params,
                json={"title": "Reset password", "content": "Steps", "isPublic": True},
            )
            assert created.status_code == 201
            article_id = created.json()["id"]
            assert created.json()["knowledgeBaseId"] == kb.id

            listed = await client.get("/api/articles", params=params)
            assert [a["id"] for a in listed.json()] == [article_id]

            updated = await client.put(
                f"/api/articles/{article_id}", params=params, json={"title": "Reset your password"}
            )
            assert updated.json()["title"] == "Reset your password"
            assert updated.json()["content"] == "Steps"

            deleted = await client.delete(f"/api/articles/{article_id}", params=params)
            assert deleted.status_code == 204

            missing = await client.get(f"/api/articles/{article_id}", params=params)
        assert missing.status_code == 404

    @pytest.mark.asyncio
    async def test_viewer_cannot_write(self):
        storage, app, kb = await setup_kb()
        await add_member(storage, kb.id, "victor", Role.VIEWER)
        async with client_for(app, "victor") as client:
            read = await client.get("/api/articles", params={"kbId": kb.id})
            write = await client.post("/api/articles", params={"kbId": kb.id}, json={"title": "X"})
        assert read.status_code == 200
        assert write.status_code == 403

    @pytest.mark.asyncio
    async def test_contributor_can_write(self):
        storage, app, kb = await setup_kb()
        await add_member(storage, kb.id, "carol", Role.CONTRIBUTOR)
        async with client_for(app, "carol") as client:
            resp = await client.post("/api/articles", params={"kbId": kb.id}, json={"title": "X"})
        assert resp.status_code == 201

    @pytest.mark.asyncio
    async def test_article_of_other_tenant_is_not_found(self):
        storage, app, kb = await setup_kb()
        other = await storage.create_knowledge_base("alice", "Other")
        article = await storage.create_article(other.id, "Elsewhere")
        async with client_for(app, "alice") as client:
            resp = await client.get(f"/api/articles/{article.id}", params={"kbId": kb.id})
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_unknown_category_rejected(self):
        _, app, kb = await setup_kb()
        async with client_for(app, "alice") as client:
            resp = await client.post(
                "/api/articles", params={"kbId": kb.id}, json={"title": "X", "categoryId": "nope"}
            )
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_categories(self):
        _, app, kb = await setup_kb()
        params = {"kbId": kb.id}
        async with client_for(app, "alice") as client:
            later = await client.post("/api/categories", params=params, json={"name": "Billing", "order": 2})
            await client.post("/api/categories", params=params, json={"name": "Account", "order": 1})
            listed = await client.get("/api/categories", params=params)
            assert [c["name"] for c in listed.json()] == ["Account", "Billing"]

            renamed = await client.put(
                f"/api/categories/{later.json()['id']}", params=params, json={"name": "Payments"}
            )
            assert renamed.json()["name"] == "Payments"

            deleted = await client.delete(f"/api/categories/{later.json()['id']}", params=params)
        assert deleted.status_code == 204


# ===========================================================================
# Team
# ===========================================================================


class TestTeam:
    @pytest.mark.asyncio
    async def test_members_include_owner(self):
        _, app, kb = await setup_kb()
        async with client_for(app, "alice") as client:
            resp = await client.get("/api/team/members", params={"kbId": kb.id})
        members = resp.json()
        assert len(members) == 1
        assert members[0]["role"] == "owner"
        assert members[0]["userId"] == "alice"
        assert "inviteToken" not in members[0]

    @pytest.mark.asyncio
    async def test_invite_and_accept(self):
        _, app, kb = await setup_kb()
        async with client_for(app, "alice") as owner:
            invited = await owner.post(
                "/api/team/invite", params={"kbId": kb.id},
                json={"email": "bob@example.com", "role": "contributor"},
            )
        assert invited.status_code == 201
        body = invited.json()
        assert body["status"] == "pending"
        assert body["emailSent"] is True
        token = body["inviteUrl"].rsplit("/", 1)[-1]

        async with client_for(app, "bob") as bob:
            accepted = await bob.post("/api/team/invite/accept", json={"token": token})
            assert accepted.status_code == 200
            assert accepted.json()["role"] == "contributor"

            listed = await bob.get("/api/knowledge-bases")
            assert [item["id"] for item in listed.json()] == [kb.id]
            assert listed.json()[0]["role"] == "contributor"

            reused = await bob.post("/api/team/invite/accept", json={"token": token})
        assert reused.status_code == 404

    @pytest.mark.asyncio
    async def test_only_owner_grants_admin(self):
        storage, app, kb = await setup_kb()
        await add_member(storage, kb.id, "adam", Role.ADMIN)
        async with client_for(app, "adam") as admin:
            as_admin = await admin.post(
                "/api/team/invite", params={"kbId": kb.id},
                json={"email": "x@example.com", "role": "admin"},
            )
            as_viewer = await admin.post(
                "/api/team/invite", params={"kbId": kb.id},
                json={"email": "y@example.com", "role": "viewer"},
            )
        assert as_admin.status_code == 403
        assert as_viewer.status_code == 201

    @pytest.mark.asyncio
    async def test_contributor_cannot_invite(self):
        storage, app, kb = await setup_kb()
        await add_member(storage, kb.id, "carol", Role.CONTRIBUTOR)
        async with client_for(app, "carol") as client:
            resp = await client.post(
                "/api/team/invite", params={"kbId": kb.id}, json={"email": "x@example.com"}
            )
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_cannot_invite_owner(self):
        _, app, kb = await setup_kb()
        async with client_for(app, "alice") as client:
            resp = await client.post(
                "/api/team/invite", params={"kbId": kb.id},
                json={"email": "x@example.com", "role": "owner"},
            )
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_owner_cannot_be_demoted_or_removed(self):
        storage, app, kb = await setup_kb()
        owner_id = (await storage.list_team_members(kb.id))[0].id
        async with client_for(app, "alice") as client:
            demote = await client.put(
                f"/api/team/{owner_id}/role", params={"kbId": kb.id}, json={"role": "viewer"}
            )
            remove = await client.delete(f"/api/team/{owner_id}", params={"kbId": kb.id})
        assert demote.status_code == 403
        assert remove.status_code == 403

    @pytest.mark.asyncio
    async def test_change_role_and_remove(self):
        storage, app, kb = await setup_kb()
        await add_member(storage, kb.id, "bob", Role.VIEWER)
        bob = next(m for m in await storage.list_team_members(kb.id) if m.user_id == "bob")
        async with client_for(app, "alice") as client:
            promoted = await client.put(
                f"/api/team/{bob.id}/role", params={"kbId": kb.id}, json={"role": "admin"}
            )
            assert promoted.json()["role"] == "admin"

            to_owner = await client.put(
                f"/api/team/{bob.id}/role", params={"kbId": kb.id}, json={"role": "owner"}
            )
            assert to_owner.status_code == 400

            removed = await client.delete(f"/api/team/{bob.id}", params={"kbId": kb.id})
        assert removed.status_code == 204
        assert await storage.get_member_role(kb.id, "bob") is None


# ===========================================================================
# Public site and analytics
# ===========================================================================


class TestPublicAndAnalytics:
    @pytest.mark.asyncio
    async def test_public_reads_only_public_articles(self):
        storage, app, kb = await setup_kb()
        public = await storage.create_article(kb.id, "Public reset", is_public=True)
        private = await storage.create_article(kb.id, "Private reset", is_public=False)
        async with client_for(app) as anon:
            branding = await anon.get(f"/api/kb/{kb.id}")
            listed = await anon.get(f"/api/kb/{kb.id}/articles")
            hidden = await anon.get(f"/api/kb/{kb.id}/articles/{private.id}")
            shown = await anon.get(f"/api/kb/{kb.id}/articles/{public.id}")
            found = await anon.get(f"/api/kb/{kb.id}/search", params={"q": "reset"})

        assert branding.json()["displayName"] == "Support"
        assert "ownerId" not in branding.json()
        assert [a["id"] for a in listed.json()] == [public.id]
        assert hidden.status_code == 404
        assert shown.status_code == 200
        assert [a["id"] for a in found.json()] == [public.id]

    @pytest.mark.asyncio
    async def test_unknown_public_kb(self):
        app = create_app(InMemoryStorage())
        async with client_for(app) as anon:
            resp = await anon.get("/api/kb/nope/articles")
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_views_and_searches_tracked(self):
        storage, app, kb = await setup_kb()
        article = await storage.create_article(kb.id, "Reset", is_public=True)
        async with client_for(app) as anon:
            for _ in range(2):
                view = await anon.post("/api/analytics/views", json={"articleId": article.id})
                assert view.status_code == 204
            await anon.post(f"/api/kb/{kb.id}/search", json={"query": "reset"})
            feedback = await anon.post(
                f"/api/articles/{article.id}/feedback", json={"isHelpful": True}
            )
            assert feedback.status_code == 204

        async with client_for(app, "alice") as client:
            views = await client.get("/api/analytics/views", params={"kbId": kb.id})
            searches = await client.get("/api/analytics/searches", params={"kbId": kb.id})

        assert views.json()["totalViews"] == 2
        assert views.json()["recentViews"][0]["articleTitle"] == "Reset"
        assert searches.json() == {
            "totalSearches": 1,
            "recentSearches": [{"query": "reset", "count": 1}],
        }


# ===========================================================================
# Integrations
# ===========================================================================


def servicenow_factory(handler):
    credentials = ServiceNowCredentials("admin", "secret")

    def build(instance_url: str) -> ServiceNowService:
        return ServiceNowService(instance_url, credentials, transport=httpx.MockTransport(handler))

    return lambda: build


class TestIntegrations:
    @pytest.mark.asyncio
    async def test_configure_and_list(self):
        _, app, kb = await setup_kb()
        async with client_for(app, "alice") as client:
            saved = await client.put(
                "/api/integrations/servicenow", params={"kbId": kb.id},
                json={"instanceUrl": "https://acme.service-now.com", "enabled": True, "autoSync": True},
            )
            listed = await client.get("/api/integrations", params={"kbId": kb.id})

        assert saved.status_code == 200
        assert saved.json()["enabled"] is True
        assert saved.json()["config"]["instanceUrl"] == "https://acme.service-now.com"
        assert saved.json()["config"]["autoSync"] is True
        assert [i["type"] for i in listed.json()] == ["servicenow"]

    @pytest.mark.asyncio
    async def test_contributor_cannot_configure(self):
        storage, app, kb = await setup_kb()
        await add_member(storage, kb.id, "carol", Role.CONTRIBUTOR)
        async with client_for(app, "carol") as client:
            resp = await client.get("/api/integrations", params={"kbId": kb.id})
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_connection_without_credentials(self):
        _, app, kb = await setup_kb()
        app.dependency_overrides[get_servicenow_factory] = lambda: (lambda url: None)
        async with client_for(app, "alice") as client:
            resp = await client.post(
                "/api/integrations/servicenow/test", params={"kbId": kb.id},
                json={"instanceUrl": "https://acme.service-now.com"},
            )
        assert resp.json()["success"] is False

    @pytest.mark.asyncio
    async def test_connection_success(self):
        _, app, kb = await setup_kb()
        app.dependency_overrides[get_servicenow_factory] = servicenow_factory(
            lambda request: httpx.Response(200, json={"result": []})
        )
        async with client_for(app, "alice") as client:
            resp = await client.post(
                "/api/integrations/servicenow/test", params={"kbId": kb.id},
                json={"instanceUrl": "https://acme.service-now.com"},
            )
        assert resp.json() == {"success": True, "message": "Connection successful"}

    @pytest.mark.asyncio
    async def test_sync_requires_enabled_integration(self):
        _, app, kb = await setup_kb()
        async with client_for(app, "alice") as client:
            resp = await client.post("/api/integrations/servicenow/sync", params={"kbId": kb.id})
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_sync_articles(self):
        storage, app, kb = await setup_kb()
        await storage.create_article(kb.id, "Good")
        await storage.create_article(kb.id, "Bad")
        await storage.upsert_integration(
            kb.id, "servicenow", True,
            {"instanceUrl": "https://acme.service-now.com", "knowledgeBaseId": "snkb"},
        )

        def handler(request: httpx.Request) -> httpx.Response:
            if b'"Bad"' in request.content:
                return httpx.Response(500, text="boom")
            return httpx.Response(201, json={"result": {"sys_id": "abc"}})

        app.dependency_overrides[get_servicenow_factory] = servicenow_factory(handler)
        async with client_for(app, "alice") as client:
            resp = await client.post("/api/integrations/servicenow/sync", params={"kbId": kb.id})

        body = resp.json()
        assert body["synced"] == 1
        assert body["failed"] == 1
        assert body["errors"][0].startswith("Bad: ServiceNow API error: 500")


# ===========================================================================
# Invitation email
# ===========================================================================


class RecordingProvider(EmailProvider):
    def __init__(self, result: EmailResult | None = None):
        self.sent: list[EmailMessage] = []
        self.result = result or EmailResult(success=True, message_id="m-1")

    async def send(self, message: EmailMessage) -> EmailResult:
        self.sent.append(message)
        return self.result


class TestInviteEmail:
    @pytest.mark.asyncio
    async def test_invite_sends_email(self):
        storage = InMemoryStorage()
        kb = await storage.create_knowledge_base("alice", "Support")
        provider = RecordingProvider()
        app = create_app(storage, EmailService(provider, "noreply@example.com", "Help Center"))

        async with client_for(app, "alice") as client:
            resp = await client.post(
                "/api/team/invite", params={"kbId": kb.id},
                json={"email": "bob@example.com", "role": "contributor"},
            )

        assert resp.status_code == 201
        assert resp.json()["emailSent"] is True
        [message] = provider.sent
        assert message.to == "bob@example.com"
        assert message.subject == "You've been invited to join Support"
        assert message.from_address == "Help Center <noreply@example.com>"
        assert resp.json()["inviteUrl"] in message.text
        assert "alice has invited you to join Support as a contributor" in message.text

    @pytest.mark.asyncio
    async def test_failed_delivery_still_creates_invite(self):
        storage = InMemoryStorage()
        kb = await storage.create_knowledge_base("alice", "Support")
        provider = RecordingProvider(EmailResult(success=False, error="relay down"))
        app = create_app(storage, EmailService(provider, "noreply@example.com"))

        async with client_for(app, "alice") as client:
            resp = await client.post(
                "/api/team/invite", params={"kbId": kb.id},
                json={"email": "bob@example.com"},
            )

        assert resp.status_code == 201
        assert resp.json()["emailSent"] is False
        members = await storage.list_team_members(kb.id)
        assert [m.status for m in members if m.email == "bob@example.com"] == ["pending"]

    @pytest.mark.asyncio
    async def test_html_body_escapes_names(self):
        storage = InMemoryStorage()
        kb = await storage.create_knowledge_base("alice", "<Support & Co>")
        provider = RecordingProvider()
        app = create_app(storage, EmailService(provider, "noreply@example.com"))

        async with client_for(app, "alice") as client:
            await client.post(
                "/api/team/invite", params={"kbId": kb.id}, json={"email": "bob@example.com"},
            )

        assert "&lt;Support &amp; Co&gt;" in provider.sent[0].html
        assert "<Support & Co>" not in provider.sent[0].html


# ===========================================================================
# API key management
# ===========================================================================


async def create_key(app, kb_id: str, user: str = "alice", **payload) -> httpx.Response:
    async with client_for(app, user) as client:
        return await client.post(
            "/api/api-keys", params={"kbId": kb_id}, json={"name": "CI", **payload}
        )


def bearer(key: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {key}"}


class TestApiKeyManagement:
    @pytest.mark.asyncio
    async def test_create_returns_key_once(self):
        storage, app, kb = await setup_kb()
        resp = await create_key(app, kb.id)

        assert resp.status_code == 201
        body = resp.json()
        assert body["scopes"] == ["read"]
        assert body["key"].startswith(body["prefix"] + "_")
        assert "hashedKey" not in body

        stored = await storage.get_api_key(body["id"])
        secret = body["key"].rsplit("_", 1)[-1]
        assert stored.hashed_key == hash_api_key(secret)

        async with client_for(app, "alice") as client:
            listed = await client.get("/api/api-keys", params={"kbId": kb.id})
        assert [k["id"] for k in listed.json()] == [body["id"]]
        assert "key" not in listed.json()[0]

    @pytest.mark.asyncio
    async def test_rejects_unknown_scope(self):
        _, app, kb = await setup_kb()
        resp = await create_key(app, kb.id, scopes=["admin"])
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_contributor_cannot_manage_keys(self):
        storage, app, kb = await setup_kb()
        await add_member(storage, kb.id, "carol", Role.CONTRIBUTOR)
        resp = await create_key(app, kb.id, user="carol")
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_revoke(self):
        storage, app, kb = await setup_kb()
        key_id = (await create_key(app, kb.id)).json()["id"]

        async with client_for(app, "alice") as client:
            resp = await client.delete(f"/api/api-keys/{key_id}", params={"kbId": kb.id})
        assert resp.status_code == 204
        assert (await storage.get_api_key(key_id)).is_revoked

    @pytest.mark.asyncio
    async def test_revoke_other_tenants_key_is_not_found(self):
        storage, app, kb = await setup_kb()
        other = await storage.create_knowledge_base("alice", "Other")
        key_id = (await create_key(app, other.id)).json()["id"]

        async with client_for(app, "alice") as client:
            resp = await client.delete(f"/api/api-keys/{key_id}", params={"kbId": kb.id})
        assert resp.status_code == 404
        assert not (await storage.get_api_key(key_id)).is_revoked


# ===========================================================================
# Public REST API (/api/v1)
# ===========================================================================


class TestPublicApiAuth:
    @pytest.mark.asyncio
    async def test_missing_header(self):
        _, app, _ = await setup_kb()
        async with client_for(app) as client:
            resp = await client.get("/api/v1/articles")
        assert resp.status_code == 401
        assert "Bearer" in resp.json()["detail"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("key", ["nonsense", "kb_abc", "xx_0a1b2c3d_secret", "kb_a_b_c"])
    async def test_malformed_key(self, key):
        _, app, _ = await setup_kb()
        async with client_for(app) as client:
            resp = await client.get("/api/v1/articles", headers=bearer(key))
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Invalid API key format."

    @pytest.mark.asyncio
    async def test_wrong_secret(self):
        _, app, kb = await setup_kb()
        key = (await create_key(app, kb.id)).json()["key"]
        forged = key.rsplit("_", 1)[0] + "_" + "0" * 64
        async with client_for(app) as client:
            resp = await client.get("/api/v1/articles", headers=bearer(forged))
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Invalid API key."

    @pytest.mark.asyncio
    async def test_revoked_key(self):
        storage, app, kb = await setup_kb()
        created = (await create_key(app, kb.id)).json()
        await storage.revoke_api_key(created["id"])
        async with client_for(app) as client:
            resp = await client.get("/api/v1/articles", headers=bearer(created["key"]))
        assert resp.status_code == 401
        assert resp.json()["detail"] == "API key has been revoked."

    @pytest.mark.asyncio
    async def test_rotating_secret_key_invalidates_keys(self, monkeypatch):
        _, app, kb = await setup_kb()
        key = (await create_key(app, kb.id)).json()["key"]
        assert hash_api_key("s", "one") != hash_api_key("s", "two")

        monkeypatch.setattr(settings, "SECRET_KEY", "rotated")
        async with client_for(app) as client:
            resp = await client.get("/api/v1/articles", headers=bearer(key))
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_missing_scope(self):
        storage, app, kb = await setup_kb()
        generated = generate_api_key()
        await storage.create_api_key(
            kb.id, "No scopes", generated.prefix, hash_api_key(generated.secret), scopes=[]
        )
        async with client_for(app) as client:
            resp = await client.get("/api/v1/articles", headers=bearer(generated.full_key))
        assert resp.status_code == 403
        assert resp.json()["detail"] == "Missing required scope: read"

    @pytest.mark.asyncio
    async def test_write_scope_grants_read(self):
        _, app, kb = await setup_kb()
        key = (await create_key(app, kb.id, scopes=["write"])).json()["key"]
        async with client_for(app) as client:
            resp = await client.get("/api/v1/articles", headers=bearer(key))
        assert resp.status_code == 200

    @pytest.mark.asyncio
    async def test_usage_is_recorded(self):
        storage, app, kb = await setup_kb()
        created = (await create_key(app, kb.id)).json()
        async with client_for(app) as client:
            await client.get("/api/v1/categories", headers=bearer(created["key"]))
            await client.get("/api/v1/categories", headers=bearer(created["key"]))
        used = await storage.get_api_key(created["id"])
        assert used.usage_count == 2
        assert used.last_used_at is not None

    @pytest.mark.asyncio
    async def test_rate_limit(self):
        _, app, kb = await setup_kb()
        key = (await create_key(app, kb.id, rateLimitOverride=2)).json()["key"]
        async with client_for(app) as client:
            first = await client.get("/api/v1/categories", headers=bearer(key))
            second = await client.get("/api/v1/categories", headers=bearer(key))
            third = await client.get("/api/v1/categories", headers=bearer(key))

        assert first.headers["X-RateLimit-Limit"] == "2"
        assert first.headers["X-RateLimit-Remaining"] == "1"
        assert second.headers["X-RateLimit-Remaining"] == "0"
        assert third.status_code == 429
        assert third.headers["X-RateLimit-Remaining"] == "0"
        assert int(third.headers["Retry-After"]) >= 1

    @pytest.mark.asyncio
    async def test_default_rate_limit_from_settings(self, monkeypatch):
        monkeypatch.setattr(settings, "API_RATE_LIMIT", 1)
        _, app, kb = await setup_kb()
        key = (await create_key(app, kb.id)).json()["key"]
        async with client_for(app) as client:
            ok = await client.get("/api/v1/categories", headers=bearer(key))
            limited = await client.get("/api/v1/categories", headers=bearer(key))
        assert ok.status_code == 200
        assert limited.status_code == 429


class TestPublicApiContent:
    @pytest.mark.asyncio
    async def test_articles_filters(self):
        storage, app, kb = await setup_kb()
        billing = await storage.create_category(kb.id, "Billing")
        await storage.create_article(kb.id, "Invoices", category_id=billing.id, is_public=True)
        await storage.create_article(kb.id, "Refunds", category_id=billing.id, is_public=False)
        await storage.create_article(kb.id, "Login", is_public=True)
        key = (await create_key(app, kb.id)).json()["key"]

        async with client_for(app) as client:
            everything = await client.get("/api/v1/articles", headers=bearer(key))
            in_billing = await client.get(
                "/api/v1/articles", headers=bearer(key), params={"category_id": billing.id}
            )
            private = await client.get(
                "/api/v1/articles", headers=bearer(key), params={"is_public": "false"}
            )

        assert everything.json()["pagination"]["total"] == 3
        assert sorted(a["title"] for a in in_billing.json()["data"]) == ["Invoices", "Refunds"]
        assert [a["title"] for a in private.json()["data"]] == ["Refunds"]
        assert set(everything.json()["data"][0]) == {
            "id", "title", "content", "categoryId", "isPublic", "createdAt", "updatedAt",
        }

    @pytest.mark.asyncio
    async def test_pagination(self):
        storage, app, kb = await setup_kb()
        for i in range(5):
            await storage.create_article(kb.id, f"Article {i}")
        key = (await create_key(app, kb.id)).json()["key"]

        async with client_for(app) as client:
            first = await client.get(
                "/api/v1/articles", headers=bearer(key), params={"limit": 2, "offset": 0}
            )
            last = await client.get(
                "/api/v1/articles", headers=bearer(key), params={"limit": 2, "offset": 4}
            )
            capped = await client.get(
                "/api/v1/articles", headers=bearer(key), params={"limit": 500}
            )

        assert first.json()["pagination"] == {"total": 5, "limit": 2, "offset": 0, "hasMore": True}
        assert len(first.json()["data"]) == 2
        assert last.json()["pagination"]["hasMore"] is False
        assert len(last.json()["data"]) == 1
        assert capped.json()["pagination"]["limit"] == 100
        assert capped.json()["pagination"]["hasMore"] is False

    @pytest.mark.asyncio
    async def test_article_of_other_knowledge_base_is_not_found(self):
        storage, app, kb = await setup_kb()
        other = await storage.create_knowledge_base("alice", "Other")
        foreign = await storage.create_article(other.id, "Secret", is_public=True)
        mine = await storage.create_article(kb.id, "Mine")
        key = (await create_key(app, kb.id)).json()["key"]

        async with client_for(app) as client:
            ok = await client.get(f"/api/v1/articles/{mine.id}", headers=bearer(key))
            missing = await client.get(f"/api/v1/articles/{foreign.id}", headers=bearer(key))

        assert ok.json()["data"]["title"] == "Mine"
        assert missing.status_code == 404

    @pytest.mark.asyncio
    async def test_categories(self):
        storage, app, kb = await setup_kb()
        other = await storage.create_knowledge_base("alice", "Other")
        billing = await storage.create_category(kb.id, "Billing", "desc", order=2)
        foreign = await storage.create_category(other.id, "Elsewhere")
        key = (await create_key(app, kb.id)).json()["key"]

        async with client_for(app) as client:
            listed = await client.get("/api/v1/categories", headers=bearer(key))
            one = await client.get(f"/api/v1/categories/{billing.id}", headers=bearer(key))
            missing = await client.get(f"/api/v1/categories/{foreign.id}", headers=bearer(key))

        assert listed.json() == {"data": [{"id": billing.id, "name": "Billing", "order": 2}]}
        assert one.json()["data"]["name"] == "Billing"
        assert missing.status_code == 404

    @pytest.mark.asyncio
    async def test_search(self):
        storage, app, kb = await setup_kb()
        await storage.create_article(kb.id, "Reset password", is_public=True)
        await storage.create_article(kb.id, "Reset runbook", is_public=False)
        key = (await create_key(app, kb.id)).json()["key"]

        async with client_for(app) as client:
            everything = await client.get("/api/v1/search", headers=bearer(key), params={"q": "reset"})
            public = await client.get(
                "/api/v1/search", headers=bearer(key), params={"q": "reset", "is_public": "true"}
            )
            limited = await client.get(
                "/api/v1/search", headers=bearer(key), params={"q": "reset", "limit": 1}
            )
            no_query = await client.get("/api/v1/search", headers=bearer(key))

        assert everything.json()["total"] == 2
        assert everything.json()["query"] == "reset"
        assert [a["title"] for a in public.json()["data"]] == ["Reset password"]
        assert limited.json()["total"] == 1
        assert no_query.status_code == 400
        assert no_query.json()["detail"] == "Query parameter 'q' is required"

    @pytest.mark.asyncio
    async def test_knowledge_base(self):
        _, app, kb = await setup_kb(name="Docs")
        key = (await create_key(app, kb.id)).json()["key"]
        async with client_for(app) as client:
            resp = await client.get("/api/v1/knowledge-base", headers=bearer(key))
        assert resp.json() == {
            "data": {"id": kb.id, "title": "Docs", "primaryColor": kb.primary_color}
        }
