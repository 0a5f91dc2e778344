"""Tests for the MCP tool surface."""

import asyncio
import json

from fake_github import FakeGitHub, make_settings
from quire.identity import Identity, StaticIdentityProvider
from quire.server import create_server
from quire.store import VersionedFileStore


class TestServer:
    def setup_method(self):
        self.fake = FakeGitHub()
        settings = make_settings(COMMIT_AUTHOR_NAME="Docs Bot", COMMIT_AUTHOR_EMAIL="docs@example.com")
        store = VersionedFileStore(settings, transport=self.fake.transport())
        self.server, self.store = create_server(settings, store=store)
        self.tools = self.server._tool_manager._tools

    def call(self, name, args):
        result = asyncio.run(self.tools[name].run(args))
        return json.loads(str(result))

    def test_tools_registered(self):
        expected = {"list_files", "read_file", "save_file", "delete_file"}
        assert set(self.tools.keys()) == expected

    def test_list_markdown(self):
        self.fake.seed("posts/a.md", "a")
        self.fake.seed("posts/b.txt", "b")
        data = self.call("list_files", {})
        assert [e["name"] for e in data["entries"]] == ["a.md"]

    def test_list_recursive(self):
        self.fake.seed("courses/intro/lesson-1.md", "1")
        data = self.call("list_files", {"path": "courses", "recursive": True})
        assert "courses/intro/lesson-1.md" in [e["path"] for e in data["entries"]]
        assert data["failures"] == {}

    def test_edit_cycle(self):
        created = self.call("save_file", {"path": "posts/a.md", "content": "# A"})
        assert created["status"] == "created"
        assert self.fake.commits[-1]["author"] == {"name": "Docs Bot", "email": "docs@example.com"}

        read = self.call("read_file", {"path": "posts/a.md"})
        assert read["content"] == "# A"

        updated = self.call("save_file", {
            "path": "posts/a.md",
            "content": "# A2",
            "expected_version_token": read["versionToken"],
        })
        assert updated["status"] == "updated"

        stale = self.call("save_file", {
            "path": "posts/a.md",
            "content": "# A3",
            "expected_version_token": read["versionToken"],
        })
        assert stale["kind"] == "conflict"
        assert self.fake.text("posts/a.md") == "# A2"

        deleted = self.call("delete_file", {"path": "posts/a.md", "expected_version_token": updated["versionToken"]})
        assert deleted["status"] == "deleted"

        missing = self.call("read_file", {"path": "posts/a.md"})
        assert missing["kind"] == "not_found"

    def test_save_existing_without_token_conflicts(self):
        self.fake.seed("posts/a.md", "theirs")
        data = self.call("save_file", {"path": "posts/a.md", "content": "mine"})
        assert data["kind"] == "conflict"
        assert self.fake.text("posts/a.md") == "theirs"

    def test_identity_provider_consulted_per_write(self):
        provider = StaticIdentityProvider(Identity(username="grace", is_authorized_committer=True))
        store = VersionedFileStore(make_settings(), transport=self.fake.transport())
        server, _ = create_server(make_settings(), store=store, identities=provider)
        tools = server._tool_manager._tools

        created = json.loads(str(asyncio.run(tools["save_file"].run({"path": "posts/a.md", "content": "# A"}))))
        assert self.fake.commits[-1]["author"] == {"name": "grace", "email": "grace@users.noreply.github.com"}

        provider.identity = Identity(display_name="Ada", contact_address="ada@example.com", is_authorized_committer=True)
        asyncio.run(tools["save_file"].run({
            "path": "posts/a.md",
            "content": "# A2",
            "expected_version_token": created["versionToken"],
        }))
        assert self.fake.commits[-1]["author"] == {"name": "Ada", "email": "ada@example.com"}

    def test_unconfigured_operator_commits_as_generic_editor(self):
        store = VersionedFileStore(make_settings(), transport=self.fake.transport())
        server, _ = create_server(make_settings(), store=store)
        asyncio.run(server._tool_manager._tools["save_file"].run({"path": "posts/a.md", "content": "# A"}))
        assert self.fake.commits[-1]["author"]["name"] == "Admin Editor"
