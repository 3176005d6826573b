from datetime import date
from decimal import Decimal

from sqlalchemy import select

from database import donations
from main import app, db


def stored_donations():
    return db.fetch_all(select(donations).order_by(donations.c.donation_id))


def test_anonymous_public_donation(client):
    response = client.post("/donations/donate", data={"donation_amount": "50.00"}, follow_redirects=False)
    assert response.status_code == 303
    assert response.headers["location"] == "/?donated=1"
    [donation] = stored_donations()
    assert donation["participant_id"] is None
    assert donation["donation_amount"] == Decimal("50.00")
    assert donation["donation_date"] == date.today()
    assert client.get("/?donated=1").json()["data"]["donated"] is True


def test_logged_in_donation_is_credited(member_client, member):
    member_client.post("/donations/donate", data={"donation_amount": "20"}, follow_redirects=False)
    [donation] = stored_donations()
    assert donation["participant_id"] == member["participant_id"]


def test_donation_amount_must_be_positive(client):
    assert client.post("/donations/donate", data={"donation_amount": "0"}).status_code == 422
    assert client.post("/donations/donate", data={"donation_amount": "lots"}).status_code == 422
    assert stored_donations() == []


def test_manager_sees_all_donations_and_total(manager_client, member):
    app.state.donations.record(Decimal("25.50"), member["participant_id"], date(2024, 3, 1))
    app.state.donations.record(Decimal("100"), None, date(2024, 4, 1))

    data = manager_client.get("/donations").json()["data"]
    assert data["is_manager"] is True
    assert data["total_items"] == 2
    assert float(data["total_donations"]) == 125.5
    # most recent first
    assert [d["donation_date"] for d in data["donations"]] == ["2024-04-01", "2024-03-01"]

    searched = manager_client.get("/donations?search=sofia").json()["data"]
    assert [d["participant_id"] for d in searched["donations"]] == [member["participant_id"]]
    # the total ignores the search
    assert float(searched["total_donations"]) == 125.5


def test_manager_records_donation_with_default_date(manager_client, member):
    response = manager_client.post("/donations/add", data={
        "participant_id": str(member["participant_id"]),
        "donation_amount": "75.25",
        "donation_date": "",
    }, follow_redirects=False)
    assert response.headers["location"] == "/donations"
    [donation] = stored_donations()
    assert donation["donation_date"] == date.today()
    assert donation["donation_amount"] == Decimal("75.25")


def test_participant_sees_own_donations_and_supporters(member_client, member, make_participant):
    other = make_participant("Lucia", "Mendez")
    app.state.donations.record(10, member["participant_id"], date(2024, 1, 1))
    app.state.donations.record(15, member["participant_id"], date(2024, 6, 1))
    app.state.donations.record(30, other, date(2024, 3, 1))

    data = member_client.get("/donations").json()["data"]
    assert data["is_manager"] is False
    assert len(data["my_donations"]) == 2
    supporters = data["supporters"]
    assert [s["participant_first_name"] for s in supporters] == ["Sofia", "Lucia"]
    assert supporters[0]["latest_donation"] == "2024-06-01"
    assert data["total_items"] == 2

    searched = member_client.get("/donations?search=mendez").json()["data"]
    assert [s["participant_id"] for s in searched["supporters"]] == [other]


def test_supporters_are_paginated(make_participant):
    for i in range(23):
        app.state.donations.record(5, make_participant(f"Donor{i:02d}", "Giver"), date(2024, 1, 1))
    first = app.state.donations.supporters(1)
    assert len(first.items) == 20
    assert first.total_pages == 2
    assert len(app.state.donations.supporters(2).items) == 3
