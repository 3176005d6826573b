import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from auth import hash_password, verify_password
from conftest import login
from database import participants, users
from main import app, db


def count(table):
    return db.scalar(select(func.count()).select_from(table))


def test_users_module_is_manager_only(member_client, member):
    assert member_client.get("/users").status_code == 403
    assert member_client.get("/users/add").status_code == 403
    assert member_client.post("/users/add", data={"username": "x", "password": "y"}).status_code == 403
    assert member_client.get(f"/users/edit/{member['user_id']}").status_code == 403
    response = member_client.post(f"/users/edit/{member['user_id']}", data={
        "username": "sofia", "participant_id": str(member["participant_id"]), "participant_role": "admin",
    })
    assert response.status_code == 403
    assert app.state.users.get(member["user_id"])["participant_role"] == "participant"
    assert member_client.post(f"/users/delete/{member['user_id']}").status_code == 403
    assert count(users) == 1


def test_list_and_search_users(manager_client, member):
    data = manager_client.get("/users").json()["data"]
    assert [u["username"] for u in data["users"]] == ["admin", "sofia"]
    assert "password" not in data["users"][0]

    found = manager_client.get("/users?search=SOFIA").json()["data"]["users"]
    assert [u["username"] for u in found] == ["sofia"]


def test_add_form_lists_participants_without_accounts(manager_client, member, make_participant):
    free = make_participant("Nora", "Diaz")
    data = manager_client.get("/users/add?error=username_taken").json()["data"]
    assert [p["participant_id"] for p in data["participants"]] == [free]
    assert data["error"] == "username_taken"


def test_add_user_linked_to_existing_participant(manager_client, make_participant):
    pid = make_participant("Nora", "Diaz", role="admin")
    response = manager_client.post("/users/add", data={
        "username": "nora", "password": "pass1234", "participant_id": str(pid),
    }, follow_redirects=False)
    assert response.headers["location"] == "/users"
    account = app.state.users.get_for_login("nora")
    assert account["participant_id"] == pid
    assert verify_password("pass1234", account["password"])


def test_add_user_with_new_participant(manager_client):
    before = count(participants)
    response = manager_client.post("/users/add", data={
        "username": "elena",
        "password": "pass1234",
        "participant_id": "new",
        "participant_first_name": "Elena",
        "participant_last_name": "Cruz",
        "participant_email": "elena@example.com",
        "participant_role": "admin",
    }, follow_redirects=False)
    assert response.headers["location"] == "/users"
    assert count(participants) == before + 1

    account = app.state.users.get_for_login("elena")
    assert account["participant_first_name"] == "Elena"
    assert account["participant_role"] == "admin"


def test_new_participant_requires_name_and_email(manager_client):
    before = count(participants), count(users)
    response = manager_client.post("/users/add", data={
        "username": "elena", "password": "pass1234", "participant_id": "new", "participant_first_name": "Elena",
    })
    assert response.status_code == 400
    assert (count(participants), count(users)) == before


def test_add_user_duplicate_username(manager_client, member):
    response = manager_client.post("/users/add", data={"username": "sofia", "password": "x"}, follow_redirects=False)
    assert response.headers["location"] == "/users/add?error=username_taken"
    assert count(users) == 2


def test_participant_and_account_roll_back_together(member):
    before = count(participants), count(users)
    values = {
        "participant_first_name": "Dup",
        "participant_last_name": "User",
        "participant_email": "dup@example.com",
        "participant_role": "participant",
    }
    with pytest.raises(IntegrityError):
        app.state.users.create_with_participant(values, "sofia", hash_password("x"))
    assert (count(participants), count(users)) == before


def test_edit_user_keeps_password_when_blank(manager_client, member, client):
    response = manager_client.post(f"/users/edit/{member['user_id']}", data={
        "username": "sofia_g",
        "password": "",
        "participant_id": str(member["participant_id"]),
        "participant_role": "admin",
    }, follow_redirects=False)
    assert response.headers["location"] == "/users"

    account = manager_client.get(f"/users/edit/{member['user_id']}").json()["data"]["user"]
    assert account["username"] == "sofia_g"
    assert account["participant_role"] == "admin"

    # old password still works and the promoted role takes effect at next login
    login(client, "sofia_g", member["password"])
    assert client.get("/").json()["data"]["is_manager"] is True


def test_edit_user_changes_password(manager_client, member, client):
    manager_client.post(f"/users/edit/{member['user_id']}", data={
        "username": "sofia", "password": "new-secret", "participant_id": str(member["participant_id"]),
    })
    login(client, "sofia", "new-secret")


def test_edit_user_rename_to_taken_username(manager_client, admin, member):
    response = manager_client.post(f"/users/edit/{member['user_id']}", data={"username": "admin"},
                                   follow_redirects=False)
    assert response.headers["location"] == f"/users/edit/{member['user_id']}?error=username_taken"


def test_edit_missing_user(manager_client):
    assert manager_client.get("/users/edit/9999").status_code == 404
    assert manager_client.post("/users/edit/9999", data={"username": "ghost"}).status_code == 404


def test_delete_user(manager_client, member):
    response = manager_client.post(f"/users/delete/{member['user_id']}", follow_redirects=False)
    assert response.headers["location"] == "/users"
    assert app.state.users.get(member["user_id"]) is None
    # the participant profile survives its account
    assert app.state.participants.get(member["participant_id"]) is not None


def test_cannot_delete_own_account(manager_client, admin):
    response = manager_client.post(f"/users/delete/{admin['user_id']}")
    assert response.status_code == 400
    assert response.json()["detail"] == "Cannot delete your own account"
    assert app.state.users.get(admin["user_id"]) is not None
