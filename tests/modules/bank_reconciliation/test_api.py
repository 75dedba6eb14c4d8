from __future__ import annotations

from datetime import date, timedelta

from httpx import AsyncClient

from src.core.auth import UserRole

BASE = "/api/v1/bank-reconciliation"
DAY = date(2025, 1, 15)

STATEMENT = (
    "Date,Description,Amount,Reference\n"
    "2025-01-15,Payment for booking BK123 - John Doe,1500.00,BK123\n"
    "2025-01-15,Deposit,1000.00,\n"
    "2025-01-16,Bank charge,0,\n"
).encode()


async def _upload(client: AsyncClient, headers: dict, content: bytes = STATEMENT, name: str = "jan.csv"):
    return await client.post(
        f"{BASE}/import",
        headers=headers,
        files={"file": (name, content, "text/csv")},
    )


class TestImportEndpoint:
    async def test_import_csv(self, client: AsyncClient, auth_headers):
        response = await _upload(client, auth_headers())

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        data = body["data"]
        assert data["format"] == "csv"
        assert data["rows_total"] == 3
        assert data["imported_count"] == 2
        assert data["skipped_count"] == 1
        assert data["issues"] == [{"row_index": 3, "reason": "zero amount"}]
        assert data["import_batch_id"].startswith("import_")
        assert response.headers["x-request-id"]

    async def test_declared_format_wins(self, client: AsyncClient, auth_headers):
        ofx = b"<STMTTRN><DTPOSTED>20250115<TRNAMT>-250.00<NAME>Hotel Refund</NAME></STMTTRN>"
        response = await client.post(
            f"{BASE}/import",
            headers=auth_headers(),
            files={"file": ("upload.dat", ofx, "application/octet-stream")},
            data={"format": "ofx"},
        )
        assert response.status_code == 201
        assert response.json()["data"]["imported_count"] == 1

    async def test_unsupported_format(self, client: AsyncClient, auth_headers):
        response = await _upload(client, auth_headers(), b"%PDF-1.4", "statement.pdf")
        assert response.status_code == 415
        body = response.json()
        assert body["success"] is False
        assert body["errors"][0]["field"] == "file"

    async def test_plain_user_cannot_import(self, client: AsyncClient, auth_headers):
        response = await _upload(client, auth_headers(role=UserRole.USER))
        assert response.status_code == 403

    async def test_missing_token(self, client: AsyncClient):
        response = await client.post(
            f"{BASE}/import", files={"file": ("jan.csv", STATEMENT, "text/csv")}
        )
        assert response.status_code == 401


class TestMatchingEndpoints:
    async def test_auto_match_returns_matches_and_suggestions(
        self, client: AsyncClient, auth_headers, make_booking
    ):
        booking = await make_booking("BK123", "1500.00", DAY, customer_name="John Doe")
        near = await make_booking("BK200", "1005.00", DAY + timedelta(days=3))
        await _upload(client, auth_headers())

        response = await client.post(f"{BASE}/auto-match", headers=auth_headers(), json={})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["matched_count"] == 1
        assert data["unmatched_count"] == 1
        assert data["matches"][0]["booking_id"] == booking.id
        assert data["matches"][0]["match_score"] == 100
        [suggestion] = data["suggestions"]
        assert suggestion["booking"]["id"] == near.id
        assert suggestion["match_method"] == "suggested"
        assert suggestion["match_score"] == 55
        assert suggestion["breakdown"] == {
            "amount": 45,
            "date_proximity": 10,
            "reference": 0,
            "description_reference": 0,
            "customer_name": 0,
            "total": 55,
        }
        assert data["unmatched"][0]["description"] == "Deposit"

    async def test_auto_match_without_body(self, client: AsyncClient, auth_headers):
        response = await client.post(f"{BASE}/auto-match", headers=auth_headers())
        assert response.status_code == 200
        assert response.json()["data"]["matched_count"] == 0

    async def test_auto_match_rejects_bad_min_score(self, client: AsyncClient, auth_headers):
        response = await client.post(
            f"{BASE}/auto-match", headers=auth_headers(), json={"min_score": 150}
        )
        assert response.status_code == 422
        assert response.json()["errors"][0]["field"] == "min_score"

    async def test_manual_match_and_unmatch(
        self, client: AsyncClient, auth_headers, make_booking
    ):
        booking = await make_booking("BK777", "50.00", DAY)
        upload = await _upload(client, auth_headers())
        batch_id = upload.json()["data"]["import_batch_id"]
        listing = await client.get(
            f"{BASE}/transactions", headers=auth_headers(), params={"import_batch_id": batch_id}
        )
        transaction_id = listing.json()["data"]["items"][0]["id"]

        response = await client.post(
            f"{BASE}/manual-match",
            headers=auth_headers(user_id=5),
            json={"transaction_id": transaction_id, "booking_id": booking.id, "match_score": 80},
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "manually_matched"
        assert data["match_method"] == "manual"
        assert data["matched_by_id"] == 5
        assert data["match_score"] == 80

        response = await client.post(f"{BASE}/unmatch/{transaction_id}", headers=auth_headers())
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "unmatched"
        assert data["matched_booking_id"] is None
        assert data["match_score"] is None

        # idempotent
        response = await client.post(f"{BASE}/unmatch/{transaction_id}", headers=auth_headers())
        assert response.status_code == 200

    async def test_manual_match_cross_tenant(
        self, client: AsyncClient, auth_headers, make_booking
    ):
        booking = await make_booking("BK777", "50.00", DAY, tenant_id=2)
        await _upload(client, auth_headers())
        listing = await client.get(f"{BASE}/transactions", headers=auth_headers())
        transaction_id = listing.json()["data"]["items"][0]["id"]

        response = await client.post(
            f"{BASE}/manual-match",
            headers=auth_headers(),
            json={"transaction_id": transaction_id, "booking_id": booking.id},
        )
        assert response.status_code == 409
        assert response.json()["errors"][0]["field"] == "booking_id"

    async def test_manual_match_unknown_transaction(self, client: AsyncClient, auth_headers):
        response = await client.post(
            f"{BASE}/manual-match",
            headers=auth_headers(),
            json={"transaction_id": 999, "booking_id": 1},
        )
        assert response.status_code == 404

    async def test_suggestion(self, client: AsyncClient, auth_headers, make_booking):
        booking = await make_booking("BK123", "1500.00", DAY)
        await _upload(client, auth_headers())
        listing = await client.get(
            f"{BASE}/transactions", headers=auth_headers(), params={"status": "unmatched"}
        )
        by_reference = {t["reference"]: t for t in listing.json()["data"]["items"]}

        response = await client.get(
            f"{BASE}/suggestions/{by_reference['BK123']['id']}", headers=auth_headers()
        )
        assert response.status_code == 200
        assert response.json()["data"]["booking"]["id"] == booking.id

        # nothing was stored
        detail = await client.get(
            f"{BASE}/transactions/{by_reference['BK123']['id']}", headers=auth_headers()
        )
        assert detail.json()["data"]["status"] == "unmatched"
        assert detail.json()["data"]["raw_data"]["Reference"] == "BK123"

    async def test_suggestion_without_candidates_is_404(self, client: AsyncClient, auth_headers):
        await _upload(client, auth_headers())
        listing = await client.get(f"{BASE}/unmatched", headers=auth_headers())
        transaction_id = listing.json()["data"][0]["id"]

        response = await client.get(f"{BASE}/suggestions/{transaction_id}", headers=auth_headers())
        assert response.status_code == 404


class TestReadEndpoints:
    async def test_transactions_are_tenant_scoped(self, client: AsyncClient, auth_headers):
        await _upload(client, auth_headers(tenant_id=1))
        await _upload(client, auth_headers(tenant_id=2))

        response = await client.get(f"{BASE}/transactions", headers=auth_headers(tenant_id=2))
        data = response.json()["data"]
        assert data["total"] == 2
        assert data["pages"] == 1

        foreign_id = data["items"][0]["id"]
        response = await client.get(
            f"{BASE}/transactions/{foreign_id}", headers=auth_headers(tenant_id=1)
        )
        assert response.status_code == 404

    async def test_invalid_status_filter(self, client: AsyncClient, auth_headers):
        response = await client.get(
            f"{BASE}/transactions", headers=auth_headers(), params={"status": "done"}
        )
        assert response.status_code == 422

    async def test_summary_and_batches(self, client: AsyncClient, auth_headers):
        upload = await _upload(client, auth_headers())
        batch_id = upload.json()["data"]["import_batch_id"]

        summary = (await client.get(f"{BASE}/summary", headers=auth_headers())).json()["data"]
        assert summary["by_status"]["unmatched"]["count"] == 2
        assert summary["by_status"]["ignored"]["count"] == 0
        assert summary["total"]["count"] == 2

        batches = (await client.get(f"{BASE}/batches", headers=auth_headers())).json()["data"]
        assert [b["import_batch_id"] for b in batches] == [batch_id]
        assert batches[0]["count"] == 2
        assert batches[0]["unmatched"] == 2

    async def test_report_and_export(self, client: AsyncClient, auth_headers):
        await _upload(client, auth_headers())

        report = await client.get(
            f"{BASE}/report", headers=auth_headers(), params={"date_from": "2025-01-01"}
        )
        assert report.status_code == 200
        data = report.json()["data"]
        assert data["period"] == {"date_from": "2025-01-01", "date_to": None}
        assert len(data["unmatched"]) == 2
        assert data["matched"] == []

        export = await client.get(f"{BASE}/report/export", headers=auth_headers())
        assert export.status_code == 200
        assert export.headers["content-type"].startswith(
            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
        )
        assert "attachment" in export.headers["content-disposition"]
        assert export.content[:2] == b"PK"

    async def test_report_inverted_range(self, client: AsyncClient, auth_headers):
        response = await client.get(
            f"{BASE}/report",
            headers=auth_headers(),
            params={"date_from": "2025-02-01", "date_to": "2025-01-01"},
        )
        assert response.status_code == 422


class TestDeleteEndpoints:
    async def test_delete_transaction(self, client: AsyncClient, auth_headers):
        await _upload(client, auth_headers())
        listing = await client.get(f"{BASE}/transactions", headers=auth_headers())
        transaction_id = listing.json()["data"]["items"][0]["id"]

        response = await client.delete(
            f"{BASE}/transactions/{transaction_id}", headers=auth_headers()
        )
        assert response.status_code == 200

        response = await client.get(
            f"{BASE}/transactions/{transaction_id}", headers=auth_headers()
        )
        assert response.status_code == 404

    async def test_delete_batch(self, client: AsyncClient, auth_headers):
        upload = await _upload(client, auth_headers())
        batch_id = upload.json()["data"]["import_batch_id"]

        response = await client.delete(f"{BASE}/batches/{batch_id}", headers=auth_headers())
        assert response.status_code == 200
        assert response.json()["data"] == {"import_batch_id": batch_id, "deleted_count": 2}

        response = await client.delete(f"{BASE}/batches/{batch_id}", headers=auth_headers())
        assert response.json()["data"]["deleted_count"] == 0

    async def test_plain_user_cannot_delete(self, client: AsyncClient, auth_headers):
        response = await client.delete(
            f"{BASE}/batches/import_x", headers=auth_headers(role=UserRole.USER)
        )
        assert response.status_code == 403


async def test_health(client: AsyncClient):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}
