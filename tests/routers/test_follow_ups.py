from lead_crm_svc.models import UserRole


def test_follow_up_lifecycle(client, make_user, headers, post_inquiry):
    presales = make_user(name="Meena Iyer")
    inquiry_id = post_inquiry(presales)["id"]
    h = headers(presales)

    resp = client.post(
        f"/api/inquiries/{inquiry_id}/follow-up",
        json={"type": "call", "message": "Asked for fee details", "inquiryStatus": "hot", "nextFollowUpDate": "2030-01-02T10:00:00Z"},
        headers=h,
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["status"] == "hot"
    follow_up = data["followUps"][0]
    assert follow_up["inquiryStatus"] == "hot"
    assert follow_up["createdBy"]["name"] == "Meena Iyer"
    assert follow_up["nextFollowUpDate"] == "2030-01-02T10:00:00"
    follow_up_id = follow_up["id"]

    resp = client.put(
        f"/api/inquiries/{inquiry_id}/follow-up/{follow_up_id}",
        json={"message": "Sent fee sheet", "status": "completed"},
        headers=h,
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["followUps"][0]["message"] == "Sent fee sheet"
    assert resp.json()["data"]["followUps"][0]["status"] == "completed"

    resp = client.get("/api/inquiries/my-follow-ups", headers=h)
    items = resp.json()["data"]["followUps"]
    assert len(items) == 1
    assert items[0]["inquiry"]["id"] == inquiry_id

    resp = client.delete(f"/api/inquiries/{inquiry_id}/follow-up/{follow_up_id}", headers=h)
    assert resp.status_code == 200
    assert resp.json()["data"]["followUps"] == []
    # deleting does not revert the status
    assert resp.json()["data"]["status"] == "hot"


def test_follow_up_validation(client, make_user, headers, post_inquiry):
    presales = make_user()
    inquiry_id = post_inquiry(presales)["id"]

    resp = client.post(f"/api/inquiries/{inquiry_id}/follow-up", json={"type": "fax", "message": "x"}, headers=headers(presales))
    assert resp.status_code == 400

    resp = client.post(f"/api/inquiries/{inquiry_id}/follow-up", json={"type": "call"}, headers=headers(presales))
    assert resp.status_code == 400
    assert resp.json()["errors"][0]["field"] == "message"


def test_unknown_follow_up_is_404(client, make_user, headers, post_inquiry):
    presales = make_user()
    inquiry_id = post_inquiry(presales)["id"]
    resp = client.put(f"/api/inquiries/{inquiry_id}/follow-up/77", json={"message": "x"}, headers=headers(presales))
    assert resp.status_code == 404


def test_my_follow_ups_is_for_presales_and_sales(client, make_user, headers):
    assert client.get("/api/inquiries/my-follow-ups", headers=headers(make_user(role=UserRole.Admin))).status_code == 403
    assert client.get("/api/inquiries/my-follow-ups", headers=headers(make_user(role=UserRole.Sales))).status_code == 200
