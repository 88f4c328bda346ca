from fastapi.testclient import TestClient

from cinescan.core.subtitles import detect_language, find_subtitles, read_text, srt_to_vtt
from cinescan.main import app

SRT_SAMPLE = (
    "\ufeff1\r\n"
    "00:00:01,000 --> 00:00:04,250\r\n"
    "Wake up, Neo.\r\n"
    "\r\n"
    "2\r\n"
    "0:01:02,500 --> 0:01:05,000 align:start\r\n"
    "The Matrix has you.\r\n"
    "Follow the white rabbit.\r\n"
    "\r\n"
    "3\r\n"
    "not a timing line\r\n"
    "dropped\r\n"
)


def test_srt_to_vtt_converts_timings_and_drops_sequence_numbers():
    vtt = srt_to_vtt(SRT_SAMPLE)
    assert vtt.startswith("WEBVTT\n\n")
    assert "00:00:01.000 --> 00:00:04.250\nWake up, Neo.\n" in vtt
    assert "00:01:02.500 --> 00:01:05.000 align:start\nThe Matrix has you.\nFollow the white rabbit.\n" in vtt
    assert "dropped" not in vtt
    assert "\r" not in vtt
    assert "\ufeff" not in vtt
    # sequence numbers never survive as standalone lines
    assert "\n1\n" not in vtt and "\n2\n" not in vtt


def test_srt_to_vtt_empty_input():
    assert srt_to_vtt("") == "WEBVTT\n\n"


def test_read_text_falls_back_to_latin1(tmp_path):
    p = tmp_path / "legacy.srt"
    p.write_bytes("Caf\xe9".encode("latin-1"))
    assert read_text(p) == "Café"


def test_detect_language_from_filename_and_content(tmp_path):
    assert detect_language("Movie.fr.srt") == "Français"
    assert detect_language("Movie.ENG.srt") == "English"
    assert detect_language("Movie_spanish.srt") == "Español"
    french = tmp_path / "Movie.srt"
    french.write_text("1\n00:00:01,000 --> 00:00:02,000\nJe pense que le chat et le chien de la maison\n", encoding="utf-8")
    assert detect_language(french.name, french) == "Français"
    assert detect_language("Movie.srt") == "English"


def test_find_subtitles_same_folder_and_subs_folder(tmp_path):
    movie_dir = tmp_path / "Heat (1995)"
    (movie_dir / "Subs").mkdir(parents=True)
    video = movie_dir / "Heat.1995.mkv"
    video.write_bytes(b"\x00" * 16)
    (movie_dir / "Heat.1995.en.srt").write_text("x", encoding="utf-8")
    (movie_dir / "Subs" / "Heat.1995.fr.vtt").write_text("WEBVTT\n", encoding="utf-8")
    (movie_dir / "notes.txt").write_text("ignore me", encoding="utf-8")

    subs = find_subtitles(str(video))
    assert [s["filename"] for s in subs] == ["Heat.1995.en.srt", "Heat.1995.fr.vtt"]
    en, fr = subs
    assert en["location"] == "same_folder" and en["format"] == "srt" and en["language"] == "English"
    assert fr["location"] == "subs_folder" and fr["format"] == "vtt" and fr["language"] == "Français"
    assert en["size"] == 1


def test_find_subtitles_missing_folder_returns_empty(tmp_path):
    assert find_subtitles(str(tmp_path / "nowhere" / "movie.mkv")) == []


# --- API ---------------------------------------------------------------------


def _admin_token(client: TestClient, promote_to_admin) -> str:
    r = client.post("/api/auth/register", json={"email": "admin@example.com", "name": "Admin", "password": "Password123!"})
    assert r.status_code == 201, r.text
    promote_to_admin("admin@example.com")
    return r.json()["access_token"]


def _index_matrix(client: TestClient, token: str, write_video) -> int:
    write_video("The.Matrix.1999.1080p.mkv")
    r = client.post("/api/admin/library/scan", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 200, r.text
    assert r.json()["indexed"] == 1
    return r.json()["results"][0]["movie_id"]


def test_subtitle_api_lists_and_serves_vtt(movies_dir, write_video, promote_to_admin):
    (movies_dir / "The.Matrix.1999.en.srt").write_text(SRT_SAMPLE, encoding="utf-8")
    (movies_dir / "The.Matrix.1999.fr.ass").write_text("[Script Info]\n", encoding="utf-8")
    with TestClient(app) as client:
        token = _admin_token(client, promote_to_admin)
        movie_id = _index_matrix(client, token, write_video)

        r = client.get(f"/api/subtitles/movie/{movie_id}")
        assert r.status_code == 200, r.text
        body = r.json()
        assert body["count"] == 2
        names = [s["filename"] for s in body["subtitles"]]
        assert names == ["The.Matrix.1999.en.srt", "The.Matrix.1999.fr.ass"]
        assert all("path" not in s for s in body["subtitles"])
        assert body["subtitles"][0]["url"] == f"/api/subtitles/movie/{movie_id}/The.Matrix.1999.en.srt"

        r = client.get(f"/api/subtitles/movie/{movie_id}/The.Matrix.1999.en.srt")
        assert r.status_code == 200
        assert r.headers["content-type"].startswith("text/vtt")
        assert r.headers["cache-control"] == "no-cache"
        assert r.text.startswith("WEBVTT")
        assert "00:00:01.000 --> 00:00:04.250" in r.text

        r = client.get(f"/api/subtitles/movie/{movie_id}/The.Matrix.1999.fr.ass")
        assert r.status_code == 415
        assert r.json()["code"] == "UNSUPPORTED_MEDIA_TYPE"

        r = client.get(f"/api/subtitles/movie/{movie_id}/missing.srt")
        assert r.status_code == 404


def test_subtitle_api_unknown_movie():
    with TestClient(app) as client:
        r = client.get("/api/subtitles/movie/999")
        assert r.status_code == 404
        assert r.json()["detail"] == "Movie not found"
