import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import IntegrityError

from babyregistry.core.errors import SlugConflictError
from babyregistry.main import app
from babyregistry.models.models import User
from babyregistry.schemas.registry import RegistryCreate
from babyregistry.services.registries import RegistryService
from conftest import add_gift, create_registry, register_and_login


class TestRegistryCreate:
    def test_create_registry_slug_from_baby_name(self, client):
        register_and_login(client)
        registry = create_registry(client, "Lucía Martínez", description="Nuestra primera lista")
        assert registry["slug"] == "lucia-martinez"
        assert registry["visitor_count"] == 0
        assert registry["is_public"] is True

    def test_same_baby_name_gets_distinct_slugs(self, client):
        register_and_login(client)
        first = create_registry(client, "Lucas")
        second = create_registry(client, "Lucas")
        assert first["slug"] == "lucas"
        assert second["slug"] != first["slug"]
        assert second["slug"].startswith("lucas-")

    def test_create_requires_auth(self, client):
        res = client.post("/registries", json={"baby_name": "Lucas"})
        assert res.status_code == 401

    def test_list_my_registries(self, client):
        register_and_login(client)
        create_registry(client, "Lucas")
        create_registry(client, "Martina", is_public=False)
        names = {item["baby_name"] for item in client.get("/registries").json()}
        assert names == {"Lucas", "Martina"}

    def test_public_listing_excludes_private(self, client):
        register_and_login(client)
        create_registry(client, "Lucas")
        create_registry(client, "Martina", is_public=False)
        names = {item["baby_name"] for item in TestClient(app).get("/registries/public").json()}
        assert "Lucas" in names
        assert "Martina" not in names


class TestRegistryRead:
    def test_get_by_slug_and_by_id(self, client):
        register_and_login(client)
        registry = create_registry(client, "Lucas")
        guest = TestClient(app)
        by_slug = guest.get(f"/registry/{registry['slug']}")
        by_id = guest.get(f"/registry/{registry['id']}")
        assert by_slug.status_code == 200
        assert by_id.json()["id"] == by_slug.json()["id"] == registry["id"]

    def test_unknown_registry(self, client):
        res = client.get("/registry/no-existe")
        assert res.status_code == 404
        assert res.json()["detail"] == "Lista de regalos no encontrada"

    def test_private_registry_hidden_from_guests(self, client):
        register_and_login(client)
        registry = create_registry(client, "Martina", is_public=False)
        assert client.get(f"/registry/{registry['slug']}").status_code == 200
        assert TestClient(app).get(f"/registry/{registry['slug']}").status_code == 403

    def test_visit_increments_counter(self, client):
        register_and_login(client)
        registry = create_registry(client, "Lucas")
        guest = TestClient(app)
        first = guest.post(f"/registry/{registry['slug']}/visit").json()
        second = guest.post(f"/registry/{registry['slug']}/visit").json()
        assert first == {"success": True, "visitor_count": 1}
        assert second["visitor_count"] == 2
        assert guest.get(f"/registry/{registry['id']}").json()["visitor_count"] == 2


class TestRegistryGifts:
    def test_available_gifts_listed_first(self, client):
        register_and_login(client)
        registry = create_registry(client, "Lucas")
        first = add_gift(client, registry["id"], name="Carrito")
        add_gift(client, registry["id"], name="Bañera")
        guest = TestClient(app)
        res = guest.post(
            "/reservations",
            json={"gift_id": first["id"], "name": "Ana", "email": "ana@example.com"},
        )
        assert res.status_code == 201
        gifts = guest.get(f"/registry/{registry['slug']}/gifts").json()
        assert [gift["name"] for gift in gifts] == ["Bañera", "Carrito"]
        assert [gift["is_reserved"] for gift in gifts] == [False, True]

    def test_guest_view_hides_reserver_details(self, client):
        register_and_login(client)
        registry = create_registry(client, "Lucas")
        gift = add_gift(client, registry["id"])
        guest = TestClient(app)
        guest.post("/reservations", json={"gift_id": gift["id"], "name": "Ana", "email": "ana@example.com"})

        listed = guest.get(f"/registry/{registry['slug']}/gifts").json()[0]
        assert listed["is_reserved"] is True
        assert "reserved_by" not in listed
        assert "cancellation_token" not in listed

        owner_view = client.get(f"/registry/{registry['slug']}/gifts").json()[0]
        assert owner_view["reserved_by"] == "ana@example.com"
        assert owner_view["reserved_by_name"] == "Ana"
        assert "cancellation_token" not in owner_view

    def test_hidden_gifts_only_for_owner(self, client):
        register_and_login(client)
        registry = create_registry(client, "Lucas")
        add_gift(client, registry["id"], name="Sorpresa", is_hidden=True)
        add_gift(client, registry["id"], name="Chupete")
        guest_names = [g["name"] for g in TestClient(app).get(f"/registry/{registry['id']}/gifts").json()]
        owner_names = [g["name"] for g in client.get(f"/registry/{registry['id']}/gifts").json()]
        assert guest_names == ["Chupete"]
        assert set(owner_names) == {"Sorpresa", "Chupete"}

    def test_category_filter(self, client):
        register_and_login(client)
        registry = create_registry(client, "Lucas")
        add_gift(client, registry["id"], name="Body", category="Ropa")
        add_gift(client, registry["id"], name="Sonajero", category="Juguetes")
        res = client.get(f"/registry/{registry['id']}/gifts", params={"category": "Ropa"})
        assert [g["name"] for g in res.json()] == ["Body"]


class TestRegistryActivities:
    def test_activity_feed_owner_only(self, client):
        register_and_login(client)
        registry = create_registry(client, "Lucas")
        gift = add_gift(client, registry["id"], name="Carrito")
        guest = TestClient(app)
        guest.post("/reservations", json={"gift_id": gift["id"], "name": "Ana", "email": "ana@example.com"})

        assert guest.get(f"/registry/{registry['id']}/activities").status_code == 401

        feed = client.get(f"/registry/{registry['id']}/activities").json()
        assert feed[0]["type"] == "GIFT_RESERVED"
        assert feed[0]["description"] == "Ana ha reservado Carrito"
        assert {item["type"] for item in feed} == {"GIFT_ADDED", "GIFT_RESERVED"}

    def test_activity_feed_forbidden_for_other_user(self, client):
        register_and_login(client)
        registry = create_registry(client, "Lucas")
        other = TestClient(app)
        register_and_login(other)
        assert other.get(f"/registry/{registry['id']}/activities").status_code == 403


def _skip_slug_precheck(monkeypatch, times=1):
    """Make the next ``times`` slug lookups report free so the insert itself collides."""
    real_slug_taken = RegistryService._slug_taken
    remaining = {"skips": 0}

    async def slug_taken(self, slug):
        if remaining["skips"]:
            remaining["skips"] -= 1
            return False
        return await real_slug_taken(self, slug)

    monkeypatch.setattr(RegistryService, "_slug_taken", slug_taken)

    def arm():
        remaining["skips"] = times

    return arm


async def _make_owner(session):
    owner = User(username="admin", email="admin@example.com", hashed_password="x")
    session.add(owner)
    await session.commit()
    return owner


@pytest.mark.anyio
async def test_slug_collision_on_insert_retries_with_suffix(session_factory, monkeypatch):
    arm = _skip_slug_precheck(monkeypatch)
    async with session_factory() as session:
        owner = await _make_owner(session)
        service = RegistryService(session)

        first = await service.create_registry(owner, RegistryCreate(baby_name="Lucas"))
        first_slug = first.slug

        arm()
        second = await service.create_registry(owner, RegistryCreate(baby_name="Lucas"))
        second_slug = second.slug

    assert first_slug == "lucas"
    assert second_slug.startswith("lucas-")


@pytest.mark.anyio
async def test_slug_attempts_exhausted(session_factory, monkeypatch):
    arm = _skip_slug_precheck(monkeypatch)
    monkeypatch.setattr("babyregistry.services.registries.suffixed_slug", lambda base: f"{base}-1")
    async with session_factory() as session:
        owner = await _make_owner(session)
        service = RegistryService(session)
        await service.create_registry(owner, RegistryCreate(baby_name="Lucas"))
        await service.create_registry(owner, RegistryCreate(baby_name="Lucas"))

        arm()
        with pytest.raises(SlugConflictError):
            await service.create_registry(owner, RegistryCreate(baby_name="Lucas"))


@pytest.mark.anyio
async def test_integrity_error_without_slug_clash_is_not_retried(session_factory, monkeypatch):
    attempts = []

    async def never_taken(self, slug):
        attempts.append(slug)
        return False

    async with session_factory() as session:
        owner = await _make_owner(session)
        service = RegistryService(session)
        await service.create_registry(owner, RegistryCreate(baby_name="Lucas"))

        monkeypatch.setattr(RegistryService, "_slug_taken", never_taken)
        with pytest.raises(IntegrityError):
            await service.create_registry(owner, RegistryCreate(baby_name="Lucas"))

    assert attempts == ["lucas", "lucas"]
