from fastapi.testclient import TestClient

from cinescan.main import app


def _register(client: TestClient, email: str, name: str = "Viewer") -> str:
    r = client.post("/api/auth/register", json={"email": email, "name": name, "password": "Password123!"})
    assert r.status_code == 201, r.text
    return r.json()["access_token"]


def _auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def _seed_catalog(client: TestClient, write_video, promote_to_admin) -> str:
    """Index three known movies through the admin scan and return the admin token."""
    token = _register(client, "admin@example.com", "Admin")
    promote_to_admin("admin@example.com")
    write_video("The.Matrix.1999.mkv")
    write_video("Inception.2010.mkv")
    write_video("Amelie.2001.mkv")
    r = client.post("/api/admin/library/scan", headers=_auth(token))
    assert r.status_code == 200, r.text
    assert r.json()["indexed"] == 3
    return token


def test_empty_catalog():
    with TestClient(app) as client:
        r = client.get("/api/movies")
        assert r.status_code == 200
        assert r.json() == {"movies": [], "pagination": {"page": 1, "limit": 20, "total": 0, "pages": 0}}
        assert client.get("/api/movies/genres").json() == {"genres": []}
        assert client.get("/api/movies/suggestions").json() == {"movies": []}


def test_list_paginates_and_filters_by_genre(write_video, promote_to_admin):
    with TestClient(app) as client:
        _seed_catalog(client, write_video, promote_to_admin)

        r = client.get("/api/movies", params={"limit": 2})
        assert r.status_code == 200
        body = r.json()
        assert len(body["movies"]) == 2
        assert body["pagination"] == {"page": 1, "limit": 2, "total": 3, "pages": 2}

        r = client.get("/api/movies", params={"limit": 2, "page": 2})
        assert len(r.json()["movies"]) == 1

        r = client.get("/api/movies", params={"genre": "science fiction"})
        titles = sorted(m["title"] for m in r.json()["movies"])
        assert titles == ["Inception", "The Matrix"]

        r = client.get("/api/movies", params={"genre": "Western"})
        assert r.json()["movies"] == []

        # oversized limits are capped rather than rejected
        r = client.get("/api/movies", params={"limit": 500})
        assert r.status_code == 200
        assert r.json()["pagination"] == {"page": 1, "limit": 100, "total": 3, "pages": 1}
        assert len(r.json()["movies"]) == 3
        assert client.get("/api/movies", params={"page": 0}).status_code == 422


def test_genres_include_movie_counts(write_video, promote_to_admin):
    with TestClient(app) as client:
        _seed_catalog(client, write_video, promote_to_admin)
        genres = client.get("/api/movies/genres").json()["genres"]
        assert [(g["name"], g["movie_count"]) for g in genres] == [
            ("Action", 2),
            ("Comedy", 1),
            ("Science Fiction", 2),
        ]


def test_search(write_video, promote_to_admin):
    with TestClient(app) as client:
        _seed_catalog(client, write_video, promote_to_admin)

        r = client.get("/api/movies/search", params={"q": "  matrix "})
        assert r.status_code == 200
        body = r.json()
        assert body["query"] == "matrix"
        assert body["count"] == 1
        assert body["movies"][0]["title"] == "The Matrix"

        r = client.get("/api/movies/search", params={"q": "zzz"})
        assert r.json()["count"] == 0

        r = client.get("/api/movies/search", params={"q": "   "})
        assert r.status_code == 400
        assert r.json()["detail"] == "Search query is required"
        assert client.get("/api/movies/search").status_code == 400

        # LIKE wildcards match literally
        for wildcard in ("%", "_", "\\"):
            r = client.get("/api/movies/search", params={"q": wildcard})
            assert r.status_code == 200
            assert r.json()["count"] == 0, wildcard


def test_movie_detail(write_video, promote_to_admin):
    with TestClient(app) as client:
        _seed_catalog(client, write_video, promote_to_admin)
        movie_id = client.get("/api/movies/search", params={"q": "Amelie"}).json()["movies"][0]["id"]

        r = client.get(f"/api/movies/{movie_id}")
        assert r.status_code == 200
        movie = r.json()
        assert movie["tmdb_id"] == 194
        assert movie["genres"] == ["Comedy"]
        assert movie["trailer_url"] == "https://www.youtube.com/watch?v=amelie01"
        assert movie["average_rating"] == 0
        assert movie["review_count"] == 0
        assert movie["has_file"] is True
        assert movie["file"]["filename"] == "Amelie.2001.mkv"

        r = client.get("/api/movies/9999")
        assert r.status_code == 404
        assert r.json()["detail"] == "Movie not found"
        assert r.json()["code"] == "NOT_FOUND"


def test_weekly_suggestion_is_admin_only(write_video, promote_to_admin):
    with TestClient(app) as client:
        admin_token = _seed_catalog(client, write_video, promote_to_admin)
        viewer_token = _register(client, "viewer@example.com")
        movie_id = client.get("/api/movies/search", params={"q": "Inception"}).json()["movies"][0]["id"]

        r = client.patch(f"/api/movies/{movie_id}/suggestion", headers=_auth(viewer_token), json={"is_weekly_suggestion": True})
        assert r.status_code == 403
        assert r.json()["code"] == "ADMIN_REQUIRED"

        r = client.patch(f"/api/movies/{movie_id}/suggestion", json={"is_weekly_suggestion": True})
        assert r.status_code == 401

        r = client.patch(f"/api/movies/{movie_id}/suggestion", headers=_auth(admin_token), json={"is_weekly_suggestion": True})
        assert r.status_code == 200, r.text
        assert r.json()["is_weekly_suggestion"] is True

        suggestions = client.get("/api/movies/suggestions").json()["movies"]
        assert [m["title"] for m in suggestions] == ["Inception"]

        r = client.patch("/api/movies/9999/suggestion", headers=_auth(admin_token), json={"is_weekly_suggestion": True})
        assert r.status_code == 404
