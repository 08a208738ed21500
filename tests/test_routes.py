"""
Church Song Navigator - HTTP Route Tests

End-to-end tests through FastAPI's TestClient. Validates:
- Homepage rendering, week selection and the catch-all fallback
- Admin login, the admin page guard and the JSON endpoint guard
- Saving collections from the admin form and from JSON; rejected saves keep the church name
- Uploads, password changes, history paging, edit and delete
- Health check and the plain-text 500 for unexpected failures
"""

import json

import pytest

from songnav.config import ADMIN_COOKIE_NAME, ADMIN_TOKEN, DEFAULT_ADMIN_PASSWORD, DEFAULT_CHURCH_NAME
from songnav.database import get_config, save_collection
from songnav.models import SongInput

# ===========================================================================
# Homepage
# ===========================================================================


class TestHomepage:
    def test_empty_store_shows_placeholders(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert "text/html" in response.headers["content-type"]
        assert DEFAULT_CHURCH_NAME in response.text
        assert "未设置本周" in response.text
        assert "未设置下周" in response.text

    def test_newest_is_next_week(self, client, run, sample_songs):
        run(save_collection("2025年三月三周", sample_songs))
        run(save_collection("2025年三月四周", [SongInput(title="下周的歌")]))
        html = client.get("/").text
        assert "本周：三月三周" in html
        assert "2025年三月四周" in html
        assert "下周的歌" in html

    def test_hidden_song_not_shown(self, client, run, sample_songs):
        run(save_collection("2025年三月三周", sample_songs))
        html = client.get("/").text
        assert "奇异恩典" in html
        assert "你真伟大" in html
        assert "主祷文" not in html
        assert "lords-prayer.png" not in html

    def test_song_without_audio_disabled(self, client, run, sample_songs):
        run(save_collection("2025年三月三周", sample_songs))
        assert "暂无音频" in client.get("/").text

    def test_titles_are_escaped(self, client, run):
        run(save_collection("2025年三月三周", [SongInput(title="<script>alert(1)</script>")]))
        html = client.get("/").text
        assert "<script>alert(1)</script>" not in html
        assert "&lt;script&gt;" in html

    def test_unknown_path_serves_homepage(self, client):
        response = client.get("/some/where/else")
        assert response.status_code == 200
        assert "主日崇拜诗歌导航" in response.text

    def test_unknown_method_serves_homepage(self, client):
        response = client.put("/admin/save")
        assert response.status_code == 200
        assert "主日崇拜诗歌导航" in response.text


# ===========================================================================
# Login and guards
# ===========================================================================


class TestAdminLogin:
    def test_correct_password(self, client):
        response = client.post("/admin", data={"password": DEFAULT_ADMIN_PASSWORD})
        assert response.status_code == 200
        assert response.json() == {"success": True, "token": ADMIN_TOKEN}
        assert response.cookies.get(ADMIN_COOKIE_NAME) == ADMIN_TOKEN
        set_cookie = response.headers["set-cookie"].lower()
        assert "httponly" in set_cookie
        assert "samesite=strict" in set_cookie

    def test_wrong_password(self, client):
        response = client.post("/admin", data={"password": "nope"})
        assert response.status_code == 403
        assert response.json() == {"success": False, "error": "密码错误"}
        assert ADMIN_COOKIE_NAME not in response.cookies

    def test_missing_password(self, client):
        response = client.post("/admin", data={})
        assert response.status_code == 403

    def test_admin_page_requires_cookie(self, client):
        response = client.get("/admin")
        assert response.status_code == 403
        assert response.text == "未授权，请先登录"

    def test_admin_page_with_forged_cookie(self, client):
        client.cookies.set(ADMIN_COOKIE_NAME, "forged")
        assert client.get("/admin").status_code == 403

    def test_admin_page_with_cookie(self, admin_client):
        response = admin_client.get("/admin")
        assert response.status_code == 200
        assert "管理后台" in response.text
        assert "歌曲管理" in response.text

    @pytest.mark.parametrize(
        "method,path",
        [
            ("post", "/admin/save"),
            ("post", "/admin/upload-sheet"),
            ("post", "/admin/upload-audio"),
            ("post", "/admin/save-password"),
            ("get", "/admin/collections"),
            ("get", "/admin/edit/1"),
            ("delete", "/admin/delete/1"),
            ("post", "/admin/delete-multiple"),
        ],
    )
    def test_json_endpoints_require_cookie(self, client, method, path):
        response = getattr(client, method)(path)
        assert response.status_code == 403
        assert response.json() == {"success": False, "error": "未授权，请先登录"}


# ===========================================================================
# Save
# ===========================================================================


class TestSave:
    def test_save_form(self, admin_client, run):
        response = admin_client.post(
            "/admin/save",
            data={
                "churchName": "主恩堂",
                "weekLabel": "2025年三月三周",
                "song_0_title": "奇异恩典",
                "song_0_audioUrl": "https://cdn.test/a.mp3",
                "song_0_visible": "on",
                "song_0_sheet_0": "https://cdn.test/1.png",
                "song_0_sheet_1": "https://cdn.test/2.png",
                "song_2_title": "你真伟大",
            },
        )
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True

        collection = admin_client.get(f"/admin/edit/{body['collectionId']}").json()["collection"]
        assert [s["title"] for s in collection["songs"]] == ["奇异恩典", "你真伟大"]
        assert [s["visible"] for s in collection["songs"]] == [True, False]
        assert [x["image_url"] for x in collection["songs"][0]["sheets"]] == [
            "https://cdn.test/1.png",
            "https://cdn.test/2.png",
        ]
        assert run(get_config())["church_name"] == "主恩堂"

    def test_save_same_label_twice(self, admin_client):
        first = admin_client.post("/admin/save", data={"weekLabel": "W", "song_0_title": "A"}).json()
        second = admin_client.post("/admin/save", data={"weekLabel": "W", "song_0_title": "B"}).json()
        assert first["collectionId"] == second["collectionId"]
        total = admin_client.get("/admin/collections").json()["total"]
        assert total == 1

    def test_save_json(self, admin_client):
        response = admin_client.post(
            "/admin/save",
            json={
                "weekLabel": "2025年三月四周",
                "songs": [{"title": "A", "audioUrl": "https://cdn.test/a.mp3", "sheetUrls": ["s1"]}],
            },
        )
        assert response.status_code == 200
        cid = response.json()["collectionId"]
        song = admin_client.get(f"/admin/edit/{cid}").json()["collection"]["songs"][0]
        assert song["audio_url"] == "https://cdn.test/a.mp3"
        assert song["visible"] is True

    def test_empty_label(self, admin_client):
        response = admin_client.post("/admin/save", data={"weekLabel": "  "})
        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "周次标签不能为空"}

    def test_missing_label(self, admin_client):
        assert admin_client.post("/admin/save", data={"song_0_title": "A"}).status_code == 400

    def test_unknown_collection_id(self, admin_client):
        response = admin_client.post("/admin/save", data={"weekLabel": "W", "collectionId": "999"})
        assert response.status_code == 404
        assert response.json()["success"] is False

    def test_rejected_save_keeps_church_name(self, admin_client, run):
        response = admin_client.post(
            "/admin/save",
            data={"churchName": "X堂", "weekLabel": "L", "collectionId": "999"},
        )
        assert response.status_code == 404
        assert run(get_config())["church_name"] == DEFAULT_CHURCH_NAME

    def test_duplicate_label_keeps_church_name(self, admin_client, run):
        run(save_collection("W1", []))
        other = run(save_collection("W2", []))
        response = admin_client.post(
            "/admin/save",
            data={"churchName": "X堂", "weekLabel": "W1", "collectionId": str(other)},
        )
        assert response.status_code == 400
        assert run(get_config())["church_name"] == DEFAULT_CHURCH_NAME


    def test_non_numeric_collection_id(self, admin_client):
        response = admin_client.post("/admin/save", data={"weekLabel": "W", "collectionId": "abc"})
        assert response.status_code == 400

    def test_rename_onto_other_label(self, admin_client, run):
        run(save_collection("W1", []))
        other = run(save_collection("W2", []))
        response = admin_client.post("/admin/save", data={"weekLabel": "W1", "collectionId": str(other)})
        assert response.status_code == 400

    def test_malformed_json(self, admin_client):
        response = admin_client.post(
            "/admin/save",
            content=b"{not json",
            headers={"content-type": "application/json"},
        )
        assert response.status_code == 400


# ===========================================================================
# Uploads
# ===========================================================================


class TestUploadRoutes:
    def test_sheet_upload(self, admin_client, fake_store):
        response = admin_client.post(
            "/admin/upload-sheet",
            files={"sheetFile": ("score 1.png", b"PNGDATA", "image/png")},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["imageUrl"].startswith("https://cdn.test/sheets/")
        assert body["imageUrl"].endswith("-score_1.png")
        assert fake_store.puts[0]["content_type"] == "image/png"

    def test_audio_upload(self, admin_client, fake_store):
        response = admin_client.post(
            "/admin/upload-audio",
            files={"audioFile": ("hymn.mp3", b"ID3", "audio/mpeg")},
        )
        assert response.status_code == 200
        assert response.json()["audioUrl"].startswith("https://cdn.test/audio/")

    def test_no_file(self, admin_client, fake_store):
        response = admin_client.post("/admin/upload-sheet", data={"other": "x"})
        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "没有选择文件"}
        assert fake_store.puts == []

    def test_wrong_field_name(self, admin_client, fake_store):
        response = admin_client.post(
            "/admin/upload-sheet",
            files={"audioFile": ("x.png", b"data", "image/png")},
        )
        assert response.status_code == 400
        assert fake_store.puts == []

    def test_storage_not_configured(self, admin_client, no_store):
        response = admin_client.post(
            "/admin/upload-sheet",
            files={"sheetFile": ("x.png", b"data", "image/png")},
        )
        assert response.status_code == 500
        assert response.json()["success"] is False


# ===========================================================================
# Password
# ===========================================================================


class TestSavePassword:
    def test_change_password(self, admin_client, client):
        response = admin_client.post("/admin/save-password", data={"newPassword": "777777"})
        assert response.json() == {"success": True}
        assert client.post("/admin", data={"password": "777777"}).status_code == 200
        assert client.post("/admin", data={"password": DEFAULT_ADMIN_PASSWORD}).status_code == 403

    def test_empty_password(self, admin_client):
        response = admin_client.post("/admin/save-password", data={"newPassword": ""})
        assert response.status_code == 400
        assert response.json()["success"] is False


# ===========================================================================
# History
# ===========================================================================


class TestHistory:
    @pytest.fixture
    def three(self, run):
        return [run(save_collection(f"2025年六月{n}周", [SongInput(title="A")])) for n in range(1, 4)]

    def test_paging(self, admin_client, three):
        body = admin_client.get("/admin/collections?page=2&perPage=2").json()
        assert body["success"] is True
        assert body["total"] == 3
        assert body["page"] == 2
        assert body["perPage"] == 2
        assert [c["id"] for c in body["collections"]] == [three[0]]
        assert body["collections"][0]["song_count"] == 1

    def test_default_paging(self, admin_client, three):
        body = admin_client.get("/admin/collections").json()
        assert body["page"] == 1
        assert len(body["collections"]) == 3

    def test_bad_paging_params_fall_back(self, admin_client, three):
        body = admin_client.get("/admin/collections?page=x&perPage=-5").json()
        assert body["page"] == 1
        assert body["perPage"] == 1

    def test_edit(self, admin_client, three):
        body = admin_client.get(f"/admin/edit/{three[1]}").json()
        assert body["success"] is True
        assert body["collection"]["collection_week_label"] == "2025年六月2周"

    def test_edit_unknown(self, admin_client):
        assert admin_client.get("/admin/edit/999").status_code == 404

    def test_edit_non_numeric(self, admin_client):
        assert admin_client.get("/admin/edit/abc").status_code == 400

    def test_delete(self, admin_client, three):
        response = admin_client.delete(f"/admin/delete/{three[0]}")
        assert response.status_code == 200
        assert response.json()["success"] is True
        assert admin_client.delete(f"/admin/delete/{three[0]}").status_code == 404
        assert admin_client.get("/admin/collections").json()["total"] == 2

    def test_delete_non_numeric(self, admin_client):
        assert admin_client.delete("/admin/delete/abc").status_code == 400

    def test_delete_multiple(self, admin_client, three):
        response = admin_client.post("/admin/delete-multiple", data={"ids": json.dumps(three[:2])})
        assert response.status_code == 200
        assert response.json()["deleted"] == 2
        assert admin_client.get("/admin/collections").json()["total"] == 1

    def test_delete_multiple_json_body(self, admin_client, three):
        response = admin_client.post("/admin/delete-multiple", json={"ids": three})
        assert response.json()["deleted"] == 3

    @pytest.mark.parametrize("ids", ["not json", "[]", '{"a": 1}', '["x"]'])
    def test_delete_multiple_malformed(self, admin_client, ids):
        response = admin_client.post("/admin/delete-multiple", data={"ids": ids})
        assert response.status_code == 400

    def test_delete_multiple_none_found(self, admin_client):
        response = admin_client.post("/admin/delete-multiple", data={"ids": "[998, 999]"})
        assert response.status_code == 404

    def test_delete_multiple_huge_batch(self, admin_client, three):
        ids = list(range(100_000, 140_000)) + three
        response = admin_client.post("/admin/delete-multiple", json={"ids": ids})
        assert response.status_code == 200
        assert response.json()["deleted"] == 3



# ===========================================================================
# Health / failures
# ===========================================================================


class TestHealthAndErrors:
    def test_health(self, client):
        body = client.get("/health").json()
        assert body["status"] == "healthy"
        assert body["database"] == "ok"
        assert body["storage_configured"] is False

    def test_unexpected_error_is_plain_text_500(self, client, monkeypatch):
        async def boom(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr("songnav.routes.pages.list_collections", boom)
        response = client.get("/")
        assert response.status_code == 500
        assert response.text == "Error: boom"
