from conftest import bearer

LEAD = {
    "name": "Moving help",
    "description": "Need two people on Saturday",
    "phone_no": "5550001111",
    "location": "Downtown",
    "city": "Austin",
}


def test_create_lead_takes_owner_from_principal(client, make_user):
    token, user_id = make_user(email="lead@example.com", name="Lead Owner")
    res = client.post("/forms/create", json={**LEAD, "owner": "someone-else"}, headers=bearer(token))
    assert res.status_code == 201, res.text
    form = res.json()["form"]
    assert form["owner"] == user_id
    assert form["user_email"] == "lead@example.com"
    assert form["user_name"] == "Lead Owner"
    assert form["message"] == LEAD["description"]
    assert form["status"] == "pending"


def test_create_lead_requires_auth_and_fields(client, make_user):
    assert client.post("/forms/create", json=LEAD).status_code == 401
    token, _ = make_user()
    res = client.post("/forms/create", json={**LEAD, "phone_no": ""}, headers=bearer(token))
    assert res.status_code == 400
    res = client.post("/forms/create", json={**LEAD, "phone_no": "1" * 16}, headers=bearer(token))
    assert res.status_code == 400


def test_leads_are_public_and_newest_first(client, make_user):
    token, _ = make_user()
    first = client.post("/forms/create", json=LEAD, headers=bearer(token)).json()["form"]["id"]
    second = client.post("/forms/create", json={**LEAD, "name": "Second"}, headers=bearer(token)).json()["form"]["id"]

    res = client.get("/forms")
    assert res.status_code == 200
    ids = [f["id"] for f in res.json()["forms"]]
    assert set(ids) == {first, second}
    assert res.json()["forms"][0]["owner"]["name"] == "Member One"

    res = client.get(f"/forms/{first}")
    assert res.json()["form"]["name"] == "Moving help"
    assert client.get("/forms/65f000000000000000000000").status_code == 404


def test_lead_status_update_needs_only_authentication(client, make_user):
    owner_token, _ = make_user("owner@example.com")
    other_token, _ = make_user("other@example.com")
    fid = client.post("/forms/create", json=LEAD, headers=bearer(owner_token)).json()["form"]["id"]

    assert client.patch(f"/forms/{fid}/status", json={"status": "contacted"}).status_code == 401

    res = client.patch(f"/forms/{fid}/status", json={"status": "closed"}, headers=bearer(other_token))
    assert res.status_code == 200
    assert res.json()["form"]["status"] == "closed"

    res = client.patch(f"/forms/{fid}/status", json={"status": "pending"}, headers=bearer(owner_token))
    assert res.json()["form"]["status"] == "pending"


def test_lead_status_must_be_known(client, make_user):
    token, _ = make_user()
    fid = client.post("/forms/create", json=LEAD, headers=bearer(token)).json()["form"]["id"]
    res = client.patch(f"/forms/{fid}/status", json={"status": "archived"}, headers=bearer(token))
    assert res.status_code == 400
    res = client.patch("/forms/bad-id/status", json={"status": "closed"}, headers=bearer(token))
    assert res.status_code == 400


def test_lead_update_is_owner_or_admin(client, make_user, admin_token):
    owner_token, owner_id = make_user("owner@example.com")
    other_token, _ = make_user("other@example.com")
    fid = client.post("/forms/create", json=LEAD, headers=bearer(owner_token)).json()["form"]["id"]

    res = client.put(f"/forms/{fid}", json={"city": "Dallas"}, headers=bearer(other_token))
    assert res.status_code == 403
    assert res.json()["success"] is False

    res = client.put(
        f"/forms/{fid}",
        json={"message": "Three people now", "name": None, "owner": "someone-else", "status": "closed"},
        headers=bearer(owner_token),
    )
    assert res.status_code == 200, res.text
    form = res.json()["form"]
    assert form["message"] == "Three people now"
    assert form["name"] == LEAD["name"]
    assert form["owner"]["id"] == owner_id
    assert form["status"] == "pending"

    res = client.put(f"/forms/{fid}", json={"city": "Houston"}, headers=bearer(admin_token))
    assert res.status_code == 200
    assert res.json()["form"]["city"] == "Houston"

    res = client.put(f"/forms/{fid}", json={"phone_no": "1" * 16}, headers=bearer(owner_token))
    assert res.status_code == 400


def test_lead_delete_is_owner_or_admin(client, make_user, admin_token):
    owner_token, _ = make_user("owner@example.com")
    other_token, _ = make_user("other@example.com")
    first = client.post("/forms/create", json=LEAD, headers=bearer(owner_token)).json()["form"]["id"]
    second = client.post("/forms/create", json=LEAD, headers=bearer(owner_token)).json()["form"]["id"]

    assert client.delete(f"/forms/{first}").status_code == 401
    assert client.delete(f"/forms/{first}", headers=bearer(other_token)).status_code == 403

    assert client.delete(f"/forms/{first}", headers=bearer(owner_token)).status_code == 200
    assert client.get(f"/forms/{first}").status_code == 404

    assert client.delete(f"/forms/{second}", headers=bearer(admin_token)).status_code == 200
    assert client.delete(f"/forms/{second}", headers=bearer(admin_token)).status_code == 404
