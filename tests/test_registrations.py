"""
Product registration workflow: submission rules, evidence handling,
duplicate detection and admin review transitions.
"""

import logging
from datetime import date, timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.timeutils import utc_today
from app.models.catalog import MattressModel
from app.models.registration import (AdminNote, ProductRegistration,
                                     RegistrationPhoto, Warranty)
from app.models.user import User
from app.services.registrations import (ADMIN_TRANSITIONS, can_transition,
                                        update_registration_status)
from app.services.warranties import add_months
from conftest import (TestingSessionLocal, auth_headers, image_files,
                      make_user, recent_purchase)


def _form(catalog, **overrides) -> dict:
    model, source = catalog
    data = {
        "mattress_model_id": str(model.id),
        "purchase_source_id": str(source.id),
        "purchase_date": recent_purchase(),
        "received_undamaged": "true",
        "info_accurate": "true",
    }
    data.update(overrides)
    return data


async def _submit(client: AsyncClient, user, catalog, files=None, **overrides):
    return await client.post(
        "/api/v1/products/register",
        data=_form(catalog, **overrides),
        files=files if files is not None else image_files(b"label", b"invoice"),
        headers=auth_headers(user),
    )


# ── State machine ───────────────────────────────────────────────────
@pytest.mark.parametrize(
    "current,target,allowed",
    [
        ("PENDING_REVIEW", "APPROVED", True),
        ("PENDING_REVIEW", "REJECTED", True),
        ("PENDING_REVIEW", "INFO_REQUESTED", True),
        ("INFO_REQUESTED", "APPROVED", True),
        ("INFO_REQUESTED", "REJECTED", True),
        ("INFO_REQUESTED", "INFO_REQUESTED", False),
        ("APPROVED", "REJECTED", False),
        ("REJECTED", "APPROVED", False),
        ("APPROVED", "PENDING_REVIEW", False),
    ],
)
def test_admin_transitions(current, target, allowed):
    assert can_transition(current, target) is allowed


def test_final_states_have_no_exits():
    assert ADMIN_TRANSITIONS["APPROVED"] == frozenset()
    assert ADMIN_TRANSITIONS["REJECTED"] == frozenset()


# ── Submission ──────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_submit_registration(async_client: AsyncClient, db_session: AsyncSession, customer, catalog):
    response = await _submit(async_client, customer, catalog, files=image_files(b"a", b"b", b"c"))
    assert response.status_code == 201, response.text
    body = response.json()
    assert body["status"] == "PENDING_REVIEW"

    registration = await db_session.get(ProductRegistration, body["registration_id"])
    assert registration.user_id == customer.id

    warranty = (await db_session.execute(select(Warranty))).scalar_one()
    assert warranty.status == "PENDING"
    assert warranty.start_date == registration.purchase_date
    assert warranty.end_date == add_months(registration.purchase_date, 120)

    photos = (
        await db_session.execute(select(RegistrationPhoto).order_by(RegistrationPhoto.id))
    ).scalars().all()
    assert [p.type for p in photos] == ["LABEL", "INVOICE", "ADDITIONAL"]
    assert all(len(p.sha256_hash) == 64 for p in photos)


@pytest.mark.asyncio
async def test_submit_requires_auth(async_client: AsyncClient, catalog):
    response = await async_client.post(
        "/api/v1/products/register", data=_form(catalog), files=image_files(b"a", b"b")
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_submit_needs_two_files(async_client: AsyncClient, customer, catalog):
    response = await _submit(async_client, customer, catalog, files=image_files(b"only"))
    assert response.status_code == 400
    assert "At least 2 photos" in response.json()["detail"]


@pytest.mark.asyncio
async def test_submit_rejects_non_images(async_client: AsyncClient, customer, catalog):
    files = [
        ("files", ("a.png", b"label", "image/png")),
        ("files", ("b.pdf", b"%PDF", "application/pdf")),
    ]
    response = await _submit(async_client, customer, catalog, files=files)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_submit_rejects_too_many_files(async_client: AsyncClient, customer, catalog):
    files = image_files(*[bytes([i]) for i in range(6)])
    response = await _submit(async_client, customer, catalog, files=files)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_purchase_one_day_before_release(async_client: AsyncClient, db_session: AsyncSession, customer, catalog):
    release = utc_today() - timedelta(days=30)
    model = MattressModel(name="Fresh", slug="fresh", warranty_months=60, released_at=release)
    db_session.add(model)
    await db_session.commit()

    response = await _submit(
        async_client,
        customer,
        catalog,
        mattress_model_id=str(model.id),
        purchase_date=(release - timedelta(days=1)).isoformat(),
    )
    assert response.status_code == 400
    assert "release date" in response.json()["detail"]

    ok = await _submit(
        async_client,
        customer,
        catalog,
        mattress_model_id=str(model.id),
        purchase_date=release.isoformat(),
    )
    assert ok.status_code == 201


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "purchase_date",
    [
        (date.today() + timedelta(days=2)).isoformat(),
        (date.today() - timedelta(days=400)).isoformat(),
    ],
)
async def test_purchase_date_window(async_client: AsyncClient, customer, catalog, purchase_date):
    response = await _submit(async_client, customer, catalog, purchase_date=purchase_date)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_confirmations_must_be_true(async_client: AsyncClient, customer, catalog):
    response = await _submit(async_client, customer, catalog, received_undamaged="false")
    assert response.status_code == 400
    assert "undamaged" in response.json()["detail"]


@pytest.mark.asyncio
async def test_inactive_model_is_rejected(async_client: AsyncClient, db_session: AsyncSession, customer, catalog):
    model, _ = catalog
    model.is_active = False
    await db_session.commit()

    response = await _submit(async_client, customer, catalog)
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid mattress model"


# ── Duplicate evidence ──────────────────────────────────────────────
@pytest.mark.asyncio
async def test_duplicate_evidence_is_flagged_not_blocked(
    async_client: AsyncClient, db_session: AsyncSession, customer, admin, catalog, caplog
):
    other = await make_user(db_session, email="other@example.com")
    shared = image_files(b"same-label", b"invoice-1")

    first = await _submit(async_client, customer, catalog, files=shared)
    with caplog.at_level(logging.WARNING, logger="app.services.registrations"):
        second = await _submit(
            async_client, other, catalog, files=image_files(b"same-label", b"invoice-2")
        )
    assert first.status_code == second.status_code == 201
    assert "Duplicate photo detected" in caplog.text

    report = await async_client.get("/api/v1/admin/fraud/duplicates", headers=auth_headers(admin))
    assert report.status_code == 200
    rows = report.json()
    assert len(rows) == 1
    assert rows[0]["registration_count"] == 2
    assert sorted(rows[0]["registration_ids"]) == sorted(
        [first.json()["registration_id"], second.json()["registration_id"]]
    )


@pytest.mark.asyncio
async def test_same_file_twice_in_one_registration_is_not_a_duplicate(
    async_client: AsyncClient, customer, admin, catalog
):
    response = await _submit(async_client, customer, catalog, files=image_files(b"x", b"x"))
    assert response.status_code == 201

    report = await async_client.get("/api/v1/admin/fraud/duplicates", headers=auth_headers(admin))
    assert report.json() == []


# ── Customer views & extra photos ───────────────────────────────────
@pytest.mark.asyncio
async def test_own_registrations_only(async_client: AsyncClient, db_session: AsyncSession, customer, catalog):
    created = await _submit(async_client, customer, catalog)
    registration_id = created.json()["registration_id"]
    stranger = await make_user(db_session, email="stranger@example.com")

    mine = await async_client.get("/api/v1/products/my", headers=auth_headers(customer))
    assert [r["id"] for r in mine.json()] == [registration_id]
    assert mine.json()[0]["warranty"]["status"] == "PENDING"

    other = await async_client.get(
        f"/api/v1/products/{registration_id}", headers=auth_headers(stranger)
    )
    assert other.status_code == 404


@pytest.mark.asyncio
async def test_info_requested_then_photos_requeues(async_client: AsyncClient, customer, admin, catalog):
    created = await _submit(async_client, customer, catalog)
    registration_id = created.json()["registration_id"]

    asked = await async_client.patch(
        f"/api/v1/admin/registrations/{registration_id}/status",
        json={"status": "INFO_REQUESTED", "reason": "Label is blurry"},
        headers=auth_headers(admin),
    )
    assert asked.status_code == 200, asked.text
    assert asked.json()["registration_status"] == "INFO_REQUESTED"
    assert asked.json()["admin_notes"][0]["content"] == (
        "Status changed to INFO_REQUESTED. Reason: Label is blurry"
    )
    assert asked.json()["rejection_reason"] is None

    added = await async_client.post(
        f"/api/v1/products/{registration_id}/photos",
        files=image_files(b"sharper-label"),
        headers=auth_headers(customer),
    )
    assert added.status_code == 200, added.text
    assert added.json()["registration_status"] == "PENDING_REVIEW"
    assert [p["type"] for p in added.json()["photos"]] == ["LABEL", "INVOICE", "ADDITIONAL"]


@pytest.mark.asyncio
async def test_no_photos_after_decision(async_client: AsyncClient, customer, admin, catalog):
    created = await _submit(async_client, customer, catalog)
    registration_id = created.json()["registration_id"]
    await async_client.patch(
        f"/api/v1/admin/registrations/{registration_id}/status",
        json={"status": "APPROVED"},
        headers=auth_headers(admin),
    )

    response = await async_client.post(
        f"/api/v1/products/{registration_id}/photos",
        files=image_files(b"late"),
        headers=auth_headers(customer),
    )
    assert response.status_code == 400


# ── Admin review ────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_reject_voids_warranty_and_keeps_reason(
    async_client: AsyncClient, db_session: AsyncSession, customer, admin, catalog
):
    created = await _submit(async_client, customer, catalog)
    registration_id = created.json()["registration_id"]

    response = await async_client.patch(
        f"/api/v1/admin/registrations/{registration_id}/status",
        json={"status": "REJECTED", "reason": "Invoice does not match"},
        headers=auth_headers(admin),
    )
    assert response.status_code == 200
    data = response.json()
    assert data["registration_status"] == "REJECTED"
    assert data["rejection_reason"] == "Invoice does not match"
    assert data["warranty"]["status"] == "VOIDED"

    final = await async_client.patch(
        f"/api/v1/admin/registrations/{registration_id}/status",
        json={"status": "APPROVED"},
        headers=auth_headers(admin),
    )
    assert final.status_code == 400


@pytest.mark.asyncio
async def test_approval_activates_warranty_and_emails_after_commit(
    async_client: AsyncClient, db_session: AsyncSession, customer, admin, catalog, notifier
):
    """A purchase on 2024-01-01 with 120 months of cover runs to 2034-01-01."""
    model, source = catalog
    start = date(2024, 1, 1)
    registration = ProductRegistration(
        user_id=customer.id,
        mattress_model_id=model.id,
        purchase_source_id=source.id,
        purchase_date=start,
        received_undamaged=True,
        info_accurate=True,
        registration_status="PENDING_REVIEW",
        warranty=Warranty(status="PENDING", start_date=start, end_date=add_months(start, 120)),
    )
    db_session.add(registration)
    await db_session.commit()

    response = await async_client.patch(
        f"/api/v1/admin/registrations/{registration.id}/status",
        json={"status": "APPROVED"},
        headers=auth_headers(admin),
    )
    assert response.status_code == 200, response.text
    warranty = response.json()["warranty"]
    assert warranty["status"] == "ACTIVE"
    assert warranty["end_date"] == "2034-01-01"
    assert warranty["activated_at"] is not None

    assert len(notifier.emails) == 1
    to, subject, html = notifier.emails[0]
    assert to == "customer@example.com"
    assert subject == "Warranty Activated"
    assert "2034-01-01" in html


@pytest.mark.asyncio
async def test_notification_failure_does_not_undo_approval(
    async_client: AsyncClient, db_session: AsyncSession, customer, admin, catalog, notifier
):
    async def broken(*_args, **_kwargs):
        raise ConnectionError("relay down")

    notifier.send_email = broken
    created = await _submit(async_client, customer, catalog)
    registration_id = created.json()["registration_id"]

    response = await async_client.patch(
        f"/api/v1/admin/registrations/{registration_id}/status",
        json={"status": "APPROVED"},
        headers=auth_headers(admin),
    )
    assert response.status_code == 200
    stored = (
        await db_session.execute(
            select(ProductRegistration.registration_status).where(
                ProductRegistration.id == registration_id
            )
        )
    ).scalar_one()
    assert stored == "APPROVED"


@pytest.mark.asyncio
async def test_failed_decision_leaves_nothing_behind(db_session: AsyncSession, customer, catalog, notifier):
    model, source = catalog
    start = utc_today() - timedelta(days=10)
    registration = ProductRegistration(
        user_id=customer.id,
        mattress_model_id=model.id,
        purchase_source_id=source.id,
        purchase_date=start,
        received_undamaged=True,
        info_accurate=True,
        registration_status="PENDING_REVIEW",
        warranty=Warranty(status="PENDING", start_date=start, end_date=add_months(start, 120)),
    )
    db_session.add(registration)
    await db_session.commit()
    registration_id = registration.id

    # the audit note cannot be written without an admin id
    ghost = User(email="ghost@example.com", role="ADMIN")
    with pytest.raises(IntegrityError):
        await update_registration_status(
            db_session, registration_id, ghost, "APPROVED", "Receipt checks out", notifier
        )

    async with TestingSessionLocal() as session:
        stored = await session.get(ProductRegistration, registration_id)
        warranty = (
            await session.execute(select(Warranty).where(Warranty.product_registration_id == registration_id))
        ).scalar_one()
        notes = (await session.execute(select(AdminNote))).scalars().all()
    assert stored.registration_status == "PENDING_REVIEW"
    assert warranty.status == "PENDING"
    assert warranty.activated_at is None
    assert notes == []
    assert notifier.emails == []


@pytest.mark.asyncio
async def test_admin_routes_need_admin_role(async_client: AsyncClient, customer):
    response = await async_client.get("/api/v1/admin/registrations", headers=auth_headers(customer))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_admin_listing_and_notes(async_client: AsyncClient, db_session: AsyncSession, customer, admin, catalog):
    created = await _submit(async_client, customer, catalog)
    registration_id = created.json()["registration_id"]

    listing = await async_client.get(
        "/api/v1/admin/registrations",
        params={"status": "PENDING_REVIEW"},
        headers=auth_headers(admin),
    )
    assert listing.status_code == 200
    assert listing.json()["total"] == 1
    item = listing.json()["items"][0]
    assert item["user"]["email"] == "customer@example.com"
    assert len(item["photos"][0]["sha256_hash"]) == 64

    note = await async_client.post(
        f"/api/v1/admin/registrations/{registration_id}/notes",
        json={"content": "Called the customer"},
        headers=auth_headers(admin),
    )
    assert note.status_code == 201
    notes = (await db_session.execute(select(AdminNote))).scalars().all()
    assert [n.content for n in notes] == ["Called the customer"]

    empty = await async_client.get(
        "/api/v1/admin/registrations",
        params={"status": "APPROVED"},
        headers=auth_headers(admin),
    )
    assert empty.json()["total"] == 0
