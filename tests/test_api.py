"""
Тесты для API
"""
import pytest
from fastapi.testclient import TestClient

from api_server import create_app

STUDENT = {
    "jshshir": "12345678901234",
    "full_name": "Aliyev Vali",
    "birth_date": "2000-01-15",
    "phone": "+998901234567",
}


class TestCertificateAPI:
    """Тесты для API удостоверений и счетов"""

    @pytest.fixture
    def client(self, settings):
        """Тестовый клиент; lifespan создает таблицы"""
        with TestClient(create_app(settings, configure_logging=False)) as client:
            yield client

    @pytest.fixture
    def student(self, client):
        response = client.post("/api/students", json=STUDENT)
        assert response.status_code == 200
        return response.json()

    def test_health_check(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["components"]["database"]["status"] == "healthy"

    def test_duplicate_student(self, client, student):
        response = client.post("/api/students", json=STUDENT)

        assert response.status_code == 409

    def test_delete_missing_student(self, client):
        response = client.delete("/api/students/00000000000000")

        assert response.status_code == 404

    def test_create_document(self, client, student):
        response = client.post("/api/documents", json={
            "student_jshshir": student["jshshir"],
            "student_name": student["full_name"],
            "course_start": "",
            "exam_date": "2024-03-15",
        })

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "success"
        assert data["certificate_number"] == "0001"
        assert data["commission_number"] == "15"

        listed = client.get("/api/documents").json()
        assert [d["id"] for d in listed] == [data["id"]]
        assert listed[0]["course_start"] == ""

    def test_create_document_unknown_student(self, client):
        response = client.post("/api/documents", json={"student_jshshir": "00000000000000"})

        assert response.status_code == 404

    def test_next_number(self, client):
        client.post("/api/documents", json={"certificate_number": "0041"})

        response = client.get("/api/documents/next-number")

        assert response.status_code == 200
        assert response.json() == {"certificate_number": "0042"}

    def test_document_detail_and_delete(self, client, student):
        created = client.post("/api/documents", json={"student_jshshir": student["jshshir"]}).json()

        detail = client.get(f"/api/documents/{created['id']}/details")
        assert detail.status_code == 200
        assert detail.json()["qr_code_base64"]
        assert detail.json()["student_phone"] == STUDENT["phone"]

        assert client.delete(f"/api/documents/{created['id']}").status_code == 200
        assert client.get(f"/api/documents/{created['id']}").status_code == 404
        assert client.delete(f"/api/documents/{created['id']}").status_code == 404

    def test_update_document(self, client):
        created = client.post("/api/documents", json={}).json()

        response = client.put(f"/api/documents/{created['id']}", json={"categories": "C", "grade1": 5})

        assert response.status_code == 200
        assert response.json()["categories"] == "C"
        assert client.put("/api/documents/999", json={}).status_code == 404

    def test_verify(self, client):
        created = client.post("/api/documents", json={"certificate_number": "0007"}).json()

        by_number = client.get("/api/verify", params={"cert": "0007"})
        by_id = client.get("/api/verify", params={"cert": str(created["id"])})

        assert by_number.status_code == 200
        assert by_number.json() == by_id.json()
        assert client.get("/api/verify", params={"cert": "9999"}).status_code == 404
        assert client.get("/api/verify").status_code == 400

    def test_invoice_lifecycle(self, client, student):
        created = client.post("/api/invoices", json={
            "student_jshshir": student["jshshir"],
            "description": "Kurs to'lovi",
            "amount": 1500000,
        })
        assert created.status_code == 200
        invoice = created.json()
        assert invoice["success"] is True
        assert invoice["invoice_number"] == "INV-000001"

        paid = client.put(f"/api/invoices/{invoice['id']}/status", json={"status": "To'landi"})
        assert paid.status_code == 200
        assert paid.json()["payment_date"] != ""

        detail = client.get(f"/api/invoices/{invoice['id']}/details").json()
        assert detail["status"] == "To'landi"
        assert detail["student_birth_date"] == STUDENT["birth_date"]

        found = client.get("/api/invoices/search", params={"q": "kurs"}).json()
        assert [i["id"] for i in found] == [invoice["id"]]

        assert client.delete(f"/api/invoices/{invoice['id']}").status_code == 200
        assert client.get("/api/invoices").json() == []

    def test_invoice_invalid_status(self, client, student):
        invoice = client.post("/api/invoices", json={"student_jshshir": student["jshshir"], "amount": 10}).json()

        response = client.put(f"/api/invoices/{invoice['id']}/status", json={"status": "Paid"})

        assert response.status_code == 400
        assert client.get(f"/api/invoices/{invoice['id']}/details").json()["status"] == "To'lov kutilmoqda"

    @pytest.mark.parametrize("body,status_code", [
        ({"student_jshshir": "12345678901234", "amount": 0}, 400),
        ({"student_jshshir": "12345678901234", "amount": 0.001}, 400),
        ({"student_jshshir": "12345678901234", "amount": 1e12}, 400),
        ({"student_jshshir": "12345678901234", "amount": "abc"}, 400),
        ({"student_jshshir": "00000000000000", "amount": 10}, 404),
    ])
    def test_invoice_create_errors(self, client, student, body, status_code):
        response = client.post("/api/invoices", json=body)

        assert response.status_code == status_code
        assert client.get("/api/invoices").json() == []

    def test_dashboard(self, client, student):
        client.post("/api/documents", json={})
        client.post("/api/invoices", json={"student_jshshir": student["jshshir"], "amount": 10})

        response = client.get("/api/dashboard")

        assert response.json() == {"students": 1, "documents": 1, "invoices": 1}
