import pytest
from fastapi.testclient import TestClient

from common.schemas import Project, RewriteCandidate, SegmentUpdate, Severity
from correction_service.pipeline import SuggestionPipeline
from gateway.main import app, get_pipeline, get_store
from gateway.projects import (
    apply_segment_updates,
    apply_suggestions,
    build_project,
    export_file_name,
    export_project,
)
from gateway.store import InMemoryProjectStore

SAMPLE_SRT = "1\n00:00:01,000 --> 00:00:02,000\nHello wrld!\n\n2\n00:00:03,500 --> 00:00:05,000\nNew line here."

REPLIES = {
    "diagnose": {"segments": [
        {"index": 1, "severity": "major", "reason": "misspelling", "confidence": 0.9},
        {"index": 2, "severity": "none", "reason": "", "confidence": 0.9},
    ]},
    "prioritize": {"indices": [1]},
    "rewrite": {"segments": [{"index": 1, "rewrite": "Hello world!", "confidence": 0.8}]},
}


def candidate(index, rewrite):
    return RewriteCandidate(index=index, rewrite=rewrite, confidence=0.9, severity=Severity.minor)


class TestProjectStore:
    @pytest.mark.asyncio
    async def test_put_get_list_delete(self):
        store = InMemoryProjectStore()
        project = build_project("alice", SAMPLE_SRT, title="Demo")
        await store.put(project)

        loaded = await store.get("alice", project.id)
        assert loaded.title == "Demo"
        assert [p.id for p in await store.list("alice")] == [project.id]
        assert await store.get("bob", project.id) is None

        await store.delete("alice", project.id)
        assert await store.get("alice", project.id) is None
        assert await store.list("alice") == []

    @pytest.mark.asyncio
    async def test_hands_out_copies(self):
        store = InMemoryProjectStore()
        project = build_project("alice", SAMPLE_SRT)
        await store.put(project)

        loaded = await store.get("alice", project.id)
        loaded.segments[0].accepted = True
        assert (await store.get("alice", project.id)).segments[0].accepted is False

    @pytest.mark.asyncio
    async def test_max_projects_enforced(self):
        store = InMemoryProjectStore(max_projects_per_owner=1)
        first = build_project("alice", SAMPLE_SRT)
        await store.put(first)
        await store.put(first)  # overwriting is fine
        with pytest.raises(RuntimeError, match="Max projects"):
            await store.put(build_project("alice", SAMPLE_SRT))
        await store.put(build_project("bob", SAMPLE_SRT))

    @pytest.mark.asyncio
    async def test_has_room(self):
        store = InMemoryProjectStore(max_projects_per_owner=1)
        assert await store.has_room("alice")
        await store.put(build_project("alice", SAMPLE_SRT))
        assert not await store.has_room("alice")
        assert await store.has_room("bob")


class TestProjects:
    def test_build_project_titles(self):
        assert build_project("o", SAMPLE_SRT, title="  Talk ").title == "Talk"
        assert build_project("o", SAMPLE_SRT, file_name="talk.vtt").title == "talk.vtt"
        assert build_project("o", SAMPLE_SRT).title == "Untitled project"

    def test_apply_suggestions(self):
        project = build_project("o", SAMPLE_SRT)
        project.segments[1].proposed_text = "stale"
        apply_suggestions(project, {1: candidate(1, "Hello world!")})

        first, second = project.segments
        assert (first.proposed_text, first.accepted) == ("Hello world!", True)
        assert (second.proposed_text, second.accepted) == ("New line here.", False)
        assert first.original_text == "Hello wrld!"
        assert list(project.suggestions) == [1]

    def test_apply_suggestions_keeps_hand_edits(self):
        project = build_project("o", SAMPLE_SRT)
        project.segments[1].edited_text = "My own line."
        project.segments[1].accepted = True
        apply_suggestions(project, {})
        assert project.segments[1].accepted is True
        assert project.segments[1].edited_text == "My own line."

    def test_segment_updates(self):
        project = build_project("o", SAMPLE_SRT)
        applied = apply_segment_updates(project, [
            SegmentUpdate(index=1, accepted=True, edited_text="Hi world!"),
            SegmentUpdate(index=42, accepted=True),
        ])
        assert [s.index for s in applied] == [1]
        assert project.segments[0].edited_text == "Hi world!"
        assert project.segments[0].accepted is True

    def test_mirrored_edit_follows_new_proposal(self):
        project = build_project("o", SAMPLE_SRT)
        seg = project.segments[0]
        seg.edited_text = seg.original_text
        apply_segment_updates(project, [SegmentUpdate(index=1, proposed_text="Hello world!")])
        assert seg.proposed_text == "Hello world!"
        assert seg.edited_text == "Hello world!"

    def test_real_edit_survives_new_proposal(self):
        project = build_project("o", SAMPLE_SRT)
        seg = project.segments[0]
        seg.edited_text = "Howdy world!"
        apply_segment_updates(project, [SegmentUpdate(index=1, proposed_text="Hello world!")])
        assert seg.edited_text == "Howdy world!"

    def test_repeated_cue_numbers_keep_their_own_text(self):
        content = "1\n00:00:01,000 --> 00:00:02,000\nfirst\n\n1\n00:00:03,000 --> 00:00:04,000\nsecnd"
        project = build_project("o", content)
        apply_suggestions(project, {2: candidate(2, "second")})

        _, srt = export_project(project)
        assert "\nfirst\n" in srt
        assert srt.endswith("\nsecond\n")
        assert [s.accepted for s in project.segments] == [False, True]

    def test_export_file_name(self):
        project = build_project("o", SAMPLE_SRT, title="Weekly sync", file_name="uploads/talk.en.vtt")
        assert export_file_name(project) == "talk.en.srt"
        project.source_file_name = None
        assert export_file_name(project) == "Weekly sync.srt"
        project.title = ""
        assert export_file_name(project) == "export.srt"

    def test_export_uses_display_text(self):
        project = build_project("o", SAMPLE_SRT, file_name="talk.srt")
        apply_suggestions(project, {1: candidate(1, "Hello world!"), 2: candidate(2, "A new line here.")})
        apply_segment_updates(project, [SegmentUpdate(index=2, accepted=False)])

        name, content = export_project(project)
        assert name == "talk.srt"
        assert content == (
            "1\n00:00:01,000 --> 00:00:02,000\nHello world!\n\n"
            "2\n00:00:03,500 --> 00:00:05,000\nNew line here.\n"
        )


class TestGatewayApi:
    @pytest.fixture
    def store(self):
        return InMemoryProjectStore(max_projects_per_owner=2)

    @pytest.fixture
    def chat(self, fake_client):
        return fake_client(REPLIES)

    @pytest.fixture
    def client(self, store, chat, correction_settings):
        pipeline = SuggestionPipeline(chat, correction_settings)
        app.dependency_overrides[get_pipeline] = lambda: pipeline
        app.dependency_overrides[get_store] = lambda: store
        yield TestClient(app)
        app.dependency_overrides.clear()

    def _create(self, client, **extra):
        body = {"content": SAMPLE_SRT, "file_name": "talk.srt", "language": "en", **extra}
        resp = client.post("/projects", json=body)
        assert resp.status_code == 201
        return resp.json()

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_create_project_with_suggestions(self, client):
        project = self._create(client)
        assert project["title"] == "talk.srt"
        assert project["owner_id"] == "offline"
        first, second = project["segments"]
        assert first["proposed_text"] == "Hello world!"
        assert first["accepted"] is True
        assert second["proposed_text"] == "New line here."
        assert second["accepted"] is False
        assert project["suggestions"]["1"]["rewrite"] == "Hello world!"

    def test_unparseable_upload(self, client):
        resp = client.post("/projects", json={"content": "1\nno timing here"})
        assert resp.status_code == 422
        assert "Block 1" in resp.json()["detail"]

    def test_owner_quota(self, client, chat):
        self._create(client)
        self._create(client)
        calls = len(chat.calls)
        resp = client.post("/projects", json={"content": SAMPLE_SRT})
        assert resp.status_code == 409
        assert len(chat.calls) == calls
        assert client.post("/projects", json={"content": SAMPLE_SRT}, headers={"X-Owner-Id": "bob"}).status_code == 201

    def test_projects_are_scoped_by_owner(self, client):
        project = self._create(client, title="Alice's talk")
        assert client.get(f"/projects/{project['id']}", headers={"X-Owner-Id": "bob"}).status_code == 404
        assert client.get("/projects", headers={"X-Owner-Id": "bob"}).json() == []
        assert [p["id"] for p in client.get("/projects").json()] == [project["id"]]

    def test_delete(self, client):
        project = self._create(client)
        assert client.delete(f"/projects/{project['id']}").status_code == 204
        assert client.get(f"/projects/{project['id']}").status_code == 404
        assert client.delete(f"/projects/{project['id']}").status_code == 404

    def test_update_segments(self, client):
        project = self._create(client)
        resp = client.patch(
            f"/projects/{project['id']}/segments",
            json={"updates": [{"index": 2, "accepted": True, "edited_text": "A new line here."}]},
        )
        assert resp.status_code == 200
        assert resp.json()["segments"][0]["edited_text"] == "A new line here."

        stored = client.get(f"/projects/{project['id']}").json()
        assert stored["segments"][1]["accepted"] is True

    def test_update_segments_rejects_empty_and_unknown(self, client):
        project = self._create(client)
        url = f"/projects/{project['id']}/segments"
        assert client.patch(url, json={"updates": [{"index": 1}]}).status_code == 400
        assert client.patch(url, json={"updates": [{"index": 9, "accepted": True}]}).status_code == 404

    def test_process_reruns_suggestions(self, client):
        project = self._create(client)
        client.patch(f"/projects/{project['id']}/segments", json={"updates": [{"index": 1, "accepted": False}]})
        resp = client.post(f"/projects/{project['id']}/process")
        assert resp.status_code == 200
        assert resp.json()["segments"][0]["accepted"] is True

    def test_export(self, client):
        project = self._create(client)
        resp = client.get(f"/projects/{project['id']}/export")
        assert resp.status_code == 200
        assert resp.headers["content-disposition"] == 'attachment; filename="talk.srt"'
        assert "Hello world!" in resp.text
        assert "New line here." in resp.text

    def test_project_model_round_trips_through_api(self, client):
        project = Project.model_validate(self._create(client))
        assert project.suggestions[1].severity is Severity.major
