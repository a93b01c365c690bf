import io

from lead_crm_svc.models import UserRole

CSV_BODY = "Student Name,Mobile Number,Email\nRahul,9000000001,rahul@example.com\nSneha,9000000002,\nNo Phone,,x@example.com\n"


def _upload(client, headers, user, body=CSV_BODY, filename="students.csv"):
    files = {"file": (filename, io.BytesIO(body.encode("utf-8")), "text/csv")}
    return client.post("/api/students/import", files=files, headers=headers(user))


def test_import_and_list_students(client, make_user, headers):
    admin = make_user(role=UserRole.Admin)

    resp = _upload(client, headers, admin)
    assert resp.status_code == 200
    body = resp.json()
    assert body["message"] == "Imported 2 students successfully"
    assert body["data"] == {
        "imported": 2,
        "duplicates": 0,
        "failed": 1,
        "total": 3,
        "errors": [{"row": 4, "error": "Missing mobile number"}],
        "cancelled": False,
    }

    resp = _upload(client, headers, admin)
    assert resp.json()["data"]["duplicates"] == 2
    assert resp.json()["message"] == "Imported 0 students. 2 duplicates skipped."

    resp = client.get("/api/students/", params={"search": "sneha"}, headers=headers(admin))
    students = resp.json()["data"]["students"]
    assert [s["studentName"] for s in students] == ["Sneha"]
    assert students[0]["email"] == "-"
    assert resp.json()["data"]["pagination"]["totalItems"] == 1


def test_import_rejects_unsupported_files(client, make_user, headers):
    admin = make_user(role=UserRole.Admin)
    resp = _upload(client, headers, admin, filename="students.txt")
    assert resp.status_code == 400
    assert resp.json()["error"] == "ValidationFailed"


def test_students_are_admin_only(client, make_user, headers):
    presales = make_user()
    assert _upload(client, headers, presales).status_code == 403
    assert client.get("/api/students/", headers=headers(presales)).status_code == 403
