from datetime import timedelta

from bson import ObjectId

import auth
import database


def test_root(client):
    assert client.get("/").json() == {"message": "Bakery Ordering API running"}


def test_create_user(client, db):
    res = client.post("/user", json={"name": "Mina", "email": "mina@example.com", "socialId": "kakao_1"})
    assert res.status_code == 200
    user = res.json()["user"]
    assert user["name"] == "Mina"
    assert user["mileage"] == 0
    assert user["cart"] == []
    assert user["socialId"] == ""
    assert db["user"].find_one({"email": "mina@example.com"})["socialId"] == "kakao_1"


def test_create_user_requires_social_id(client):
    res = client.post("/user", json={"name": "Mina", "email": "mina@example.com"})
    assert res.status_code == 400
    assert res.json() == {"err": "socialId is required"}


def test_create_user_bad_email(client):
    res = client.post("/user", json={"name": "Mina", "email": "not-an-email", "socialId": "kakao_1"})
    assert res.status_code == 400
    assert "err" in res.json()


def test_create_user_duplicate_email(client, make_user):
    existing = make_user()
    res = client.post("/user", json={"name": "Other", "email": existing["email"], "socialId": "kakao_9"})
    assert res.status_code == 400
    assert res.json() == {"err": "Email already registered"}


def test_get_user(client, make_user):
    user = make_user()
    res = client.get(f"/user/{user['_id']}")
    assert res.status_code == 200
    assert res.json()["user"]["email"] == user["email"]
    assert res.json()["user"]["token"] == ""


def test_get_user_malformed_id(client):
    res = client.get("/user/123")
    assert res.status_code == 400
    assert res.json() == {"err": "invalid user id"}


def test_list_users(client, make_user):
    make_user()
    make_user(token="other")
    assert len(client.get("/user").json()["user"]) == 2


def test_update_user(client, make_user):
    user = make_user()
    res = client.patch(f"/user/{user['_id']}", json={"token": "tok", "phone": "01099998888"})
    assert res.status_code == 200
    assert res.json()["user"]["phone"] == "01099998888"
    assert res.json()["user"]["name"] == user["name"]


def test_update_user_wrong_token(client, make_user):
    user = make_user()
    res = client.patch(f"/user/{user['_id']}", json={"token": "nope", "name": "X"})
    assert res.status_code == 400
    assert res.json() == {"err": "token is wrong"}


def test_update_user_expired_token(client, make_user):
    user = make_user(expires_in=timedelta(minutes=-5))
    res = client.patch(f"/user/{user['_id']}", json={"token": "tok", "name": "X"})
    assert res.status_code == 400
    assert res.json() == {"err": "token is expired"}


def test_delete_user_cascades_shippings(client, db, make_user):
    user = make_user()
    client.post(f"/shipping/{user['_id']}", json={"name": "Home", "phone": "010", "address": "Seoul", "tag": "home"})
    assert db["shipping"].count_documents({}) == 1

    res = client.request("DELETE", f"/user/{user['_id']}", json={"token": "tok"})
    assert res.status_code == 200
    assert db["user"].count_documents({}) == 0
    assert db["shipping"].count_documents({}) == 0


def test_delete_user_twice(client, make_user):
    user = make_user()
    client.request("DELETE", f"/user/{user['_id']}", json={"token": "tok"})
    res = client.request("DELETE", f"/user/{user['_id']}", json={"token": "tok"})
    assert res.status_code == 400
    assert res.json() == {"err": "no matched user"}


def test_auth_by_token(client, make_user):
    make_user()
    res = client.post("/user/auth", json={"token": "tok"})
    assert res.status_code == 200
    body = res.json()["user"]
    assert body["token"] == "tok"
    assert body["socialToken"] == ""


def test_auth_expired_token(client, make_user):
    make_user(expires_in=timedelta(seconds=-1))
    res = client.post("/user/auth", json={"token": "tok"})
    assert res.status_code == 400
    assert res.json() == {"err": "token is expired"}


def test_kakao_login_creates_user(client, db, monkeypatch):
    monkeypatch.setattr(auth, "exchange_kakao_code", lambda code, uri: {
        "accessToken": "kakao-access", "socialId": "kakao_42", "name": "Jun", "email": "jun@example.com",
    })
    res = client.post("/user/kakaologin", json={"code": "abc", "redirectUri": "http://localhost/cb"})
    assert res.status_code == 200
    body = res.json()["user"]
    assert body["token"]
    assert body["socialToken"] == ""

    stored = db["user"].find_one({"socialId": "kakao_42"})
    assert stored["socialToken"] == "kakao-access"
    assert stored["token"] == body["token"]
    assert not auth.is_expired(stored)
    assert auth.is_expired(stored, at=database.now() + timedelta(hours=3))


def test_kakao_login_existing_user(client, db, make_user, monkeypatch):
    user = make_user(socialId="kakao_7")
    monkeypatch.setattr(auth, "exchange_kakao_code", lambda code, uri: {
        "accessToken": "fresh", "socialId": "kakao_7", "name": "Jun", "email": "jun@example.com",
    })
    client.post("/user/kakaologin", json={"code": "abc", "redirectUri": "http://localhost/cb"})
    assert db["user"].count_documents({}) == 1
    stored = db["user"].find_one({"_id": user["_id"]})
    assert stored["socialToken"] == "fresh"
    assert stored["token"] != "tok"


def test_kakao_login_requires_code(client):
    res = client.post("/user/kakaologin", json={"redirectUri": "http://localhost/cb"})
    assert res.status_code == 400
    assert res.json() == {"err": "code is required"}


def test_logout(client, db, make_user, monkeypatch):
    user = make_user()
    called = []
    monkeypatch.setattr(auth, "kakao_logout", called.append)
    res = client.post("/user/logout", json={"token": "tok"})
    assert res.status_code == 200
    assert called == ["provider-token"]
    stored = db["user"].find_one({"_id": user["_id"]})
    assert stored["token"] == ""
    assert stored["socialToken"] == ""
    assert stored["tokenExpiration"] is None


def test_logout_without_provider_token(client, make_user):
    make_user(socialToken="")
    res = client.post("/user/logout", json={"token": "tok"})
    assert res.status_code == 400
    assert res.json() == {"err": "accessToken does not exist in user db"}


def test_get_unknown_user_is_empty(client):
    assert client.get(f"/user/{ObjectId()}").json() == {"user": None}

def test_kakao_login_rejects_email_of_another_account(client, db, make_user, monkeypatch):
    existing = make_user()
    monkeypatch.setattr(auth, "exchange_kakao_code", lambda code, uri: {
        "accessToken": "kakao-access", "socialId": "kakao_999", "name": "Jun", "email": existing["email"],
    })
    res = client.post("/user/kakaologin", json={"code": "abc", "redirectUri": "http://localhost/cb"})
    assert res.status_code == 400
    assert res.json() == {"err": "Email already registered"}
    assert db["user"].count_documents({"email": existing["email"]}) == 1


def test_update_user_rejects_blank_name(client, db, make_user):
    user = make_user()
    res = client.patch(f"/user/{user['_id']}", json={"token": "tok", "name": ""})
    assert res.status_code == 400
    assert db["user"].find_one({"_id": user["_id"]})["name"] == user["name"]
