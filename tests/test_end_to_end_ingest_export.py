"""
End-to-end API tests: price list in, catalogue out.

Drives the HTTP routes against the in-memory store:
- Supplier setup and brand lists
- Upload preview and mapping checks
- Submit → background ingestion run → run status
- Chunk endpoint wire contract
- Catalogue export with EOL reconciliation

The ingestion run talks to the chunk processor in-process instead of over
HTTP, so the whole flow stays inside the test.
"""

import json

import pytest

from services import ingestion_run_registry
from services.chunk_processor_service import get_chunk_processor


class LocalChunkEndpoint:
    """Chunk endpoint served by the in-process chunk processor."""

    def process_chunk(self, request):
        return get_chunk_processor().process(request)


@pytest.fixture(autouse=True)
def clean_runs():
    ingestion_run_registry.clear_runs()
    yield
    ingestion_run_registry.clear_runs()


@pytest.fixture
def client(test_client_with_mock_db, monkeypatch):
    monkeypatch.setattr("routes.uploads.ChunkEndpointClient", LocalChunkEndpoint)
    return test_client_with_mock_db


def submit(client, content, mapping, supplier_id=1, batch_size=2):
    return client.post(
        "/api/uploads",
        data={
            "supplier_id": str(supplier_id),
            "mapping": json.dumps(mapping),
            "effective_date": "2025-02-01",
            "batch_size": str(batch_size),
        },
        files={"file": ("prices.csv", content, "text/csv")},
    )


class TestSupplierRoutes:
    """Supplier endpoints."""

    def test_create_and_list(self, client, mock_db):
        response = client.post("/api/suppliers", json={"name": "Acme Electrical"})

        assert response.status_code == 201
        assert response.json()["name"] == "Acme Electrical"
        listed = client.get("/api/suppliers").json()
        assert [s["name"] for s in listed] == ["Acme Electrical"]

    def test_brands_of_unknown_supplier(self, client, mock_db):
        response = client.get("/api/suppliers/42/brands")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "SUPPLIER_NOT_FOUND"


class TestUploadRoutes:
    """Preview and submit validation."""

    def test_preview(self, client, sample_price_list_csv):
        response = client.post(
            "/api/uploads/preview",
            files={"file": ("prices.csv", sample_price_list_csv, "text/csv")},
        )

        body = response.json()
        assert response.status_code == 200
        assert [h["value"] for h in body["headers"]] == ["Item Code", "Mfr Part", "Desc", "Cost", "Brand"]
        assert body["total_rows"] == 3
        assert body["rows"][1]["Desc"] == "Conduit, 20mm"
        assert {f["value"] for f in body["fields"] if f["required"]} == {
            "supplier_sku", "mpn", "description", "price_ex_gst"
        }

    def test_incomplete_mapping_stores_nothing(self, client, mock_db, sample_supplier, sample_price_list_csv):
        response = submit(client, sample_price_list_csv, {"supplier_sku": "Item Code", "mpn": "Mfr Part"})

        assert response.status_code == 422
        error = response.json()["error"]
        assert error["code"] == "MAPPING_INCOMPLETE"
        assert error["details"]["missing"] == ["description", "price_ex_gst"]
        assert mock_db.storage.uploads == []
        assert mock_db.rows("upload") == []

    def test_mapping_not_json(self, client, sample_supplier, sample_price_list_csv):
        response = client.post(
            "/api/uploads",
            data={"supplier_id": "1", "mapping": "{nope"},
            files={"file": ("prices.csv", sample_price_list_csv, "text/csv")},
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "INVALID_MAPPING"

    def test_unknown_supplier(self, client, mock_db, sample_price_list_csv, sample_mapping):
        response = submit(client, sample_price_list_csv, sample_mapping, supplier_id=9)

        assert response.status_code == 404


class TestIngestionFlow:
    """Submit a price list and follow its run."""

    def test_submit_runs_to_completion(self, client, mock_db, sample_supplier,
                                       sample_price_list_csv, sample_mapping):
        response = submit(client, sample_price_list_csv, sample_mapping, batch_size=2)

        assert response.status_code == 202
        body = response.json()
        assert body["upload"]["reused"] is False
        assert body["run"]["effective_date"] == "01-02-2025"

        run = client.get(f"/api/ingest/runs/{body['run']['run_id']}").json()
        assert run["status"] == "completed"
        assert run["processed_rows"] == 3
        assert run["completed_batches"] == 2
        assert run["total_rows"] == 3
        assert len(mock_db.rows("supplier_product")) == 3
        assert mock_db.rows("upload")[0]["parsed_ok"] is True

    def test_submit_never_reads_whole_upload(self, client, mock_db, sample_supplier,
                                             sample_price_list_csv, sample_mapping, monkeypatch):
        async def refuse_read(self, size=-1):
            raise AssertionError("whole-file read")

        monkeypatch.setattr("starlette.datastructures.UploadFile.read", refuse_read)

        response = submit(client, sample_price_list_csv, sample_mapping)

        assert response.status_code == 202
        assert len(mock_db.rows("supplier_product")) == 3

    def test_resubmission_reuses_upload(self, client, mock_db, sample_supplier,
                                        sample_price_list_csv, sample_mapping):
        first = submit(client, sample_price_list_csv, sample_mapping).json()
        second = submit(client, sample_price_list_csv, sample_mapping).json()

        assert second["upload"]["upload_id"] == first["upload"]["upload_id"]
        assert second["upload"]["reused"] is True
        assert len(mock_db.rows("supplier_product")) == 3

    def test_unknown_run(self, client):
        response = client.get("/api/ingest/runs/missing")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "INGESTION_RUN_NOT_FOUND"

    def test_cancel_finished_run(self, client, mock_db, sample_supplier,
                                 sample_price_list_csv, sample_mapping):
        run_id = submit(client, sample_price_list_csv, sample_mapping).json()["run"]["run_id"]

        response = client.post(f"/api/ingest/runs/{run_id}/cancel")

        assert response.json()["status"] == "completed"


class TestChunkEndpoint:
    """Wire contract of the chunk endpoint."""

    def test_camel_case_round_trip(self, client, mock_db, sample_supplier,
                                   sample_price_list_csv, sample_mapping):
        from services.upload_service import UploadService
        upload = UploadService().submit(1, sample_price_list_csv, "prices.csv")

        response = client.post("/api/ingest/chunk", json={
            "uploadId": upload.upload_id,
            "effectiveDate": "01-02-2025",
            "offset": 0,
            "limit": 2,
            "mapping": sample_mapping,
        })

        body = response.json()
        assert response.status_code == 200
        assert body["ok"] is True
        assert body["processed"] == 2
        assert body["nextOffset"] == 2
        assert body["totalRows"] == 3
        assert body["done"] is False

    def test_bad_effective_date_rejected(self, client):
        response = client.post("/api/ingest/chunk", json={
            "uploadId": 1,
            "effectiveDate": "2025-02-01",
            "offset": 0,
            "limit": 2,
            "mapping": {},
        })

        assert response.status_code == 422


class TestExportFlow:
    """Catalogue download after ingestion."""

    def test_export_with_eol(self, client, mock_db, sample_supplier,
                             sample_price_list_csv, sample_mapping):
        submit(client, sample_price_list_csv, sample_mapping)
        reference = (
            "Supplier Part Number,Universal Product Code,Description\n"
            "SKU-1,AB 100,Cable tie 100mm\n"
            "SKU-9,ZZ 900,Retired fitting\n"
        ).encode("utf-8")

        response = client.post(
            "/api/export/catalogue",
            data={"supplier_id": "1", "as_of": "2025-02-14"},
            files={"reference": ("previous.csv", reference, "text/csv")},
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert response.headers["content-disposition"] == (
            'attachment; filename="Catalogue-Export-Acme-Electrical-2025-02-14.csv"'
        )
        assert response.headers["x-export-items"] == "3"
        assert response.headers["x-export-eol"] == "1"
        lines = response.text.split("\n")
        assert len(lines) == 1 + 3 + 1
        assert "EOL • Retired fitting" in lines[-1]

    def test_export_brand_filter(self, client, mock_db, sample_supplier,
                                 sample_price_list_csv, sample_mapping):
        submit(client, sample_price_list_csv, sample_mapping)

        response = client.post(
            "/api/export/catalogue",
            data={"supplier_id": "1", "brands": ["Clipsal"], "as_of": "2025-02-14"},
        )

        assert response.headers["x-export-items"] == "1"
        assert "SKU-2" in response.text
        assert "SKU-1" not in response.text

    def test_brands_after_ingest(self, client, mock_db, sample_supplier,
                                 sample_price_list_csv, sample_mapping):
        submit(client, sample_price_list_csv, sample_mapping)

        body = client.get("/api/suppliers/1/brands").json()

        assert body["brands"] == ["Acme Electrical", "Clipsal", "Hellerman"]

    def test_export_unknown_supplier(self, client, mock_db):
        response = client.post("/api/export/catalogue", data={"supplier_id": "7"})

        assert response.status_code == 404
