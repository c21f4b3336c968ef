"""Real HTTP tests for the GitHub API client.

Every call goes over a socket to the in-process fake GitHub server.
"""

import pytest

from studio_publisher.api_clients.base_client import (
    APIClientError,
    AuthenticationError,
    ObjectNotFoundError,
)
from studio_publisher.api_clients.github_client import (
    BranchConflictError,
    BranchNotFoundError,
    EmptyRepositoryError,
    GitHubAPIClient,
    RepositoryExistsError,
    RepositoryNotFoundError,
    TreeEntry,
)
from studio_publisher.api_clients.network_error_handler import ServerError
from studio_publisher.config import RetrySettings

from tests.infrastructure.fake_github_server import TEST_LOGIN, TEST_TOKEN, blob_sha


class TestClientConstruction:
    def test_requires_token(self):
        with pytest.raises(AuthenticationError):
            GitHubAPIClient(token="")

    def test_default_headers(self):
        client = GitHubAPIClient(token="ghp_x")
        headers = client._default_headers()
        assert headers["Authorization"] == "Bearer ghp_x"
        assert headers["Accept"] == "application/vnd.github+json"
        assert headers["X-GitHub-Api-Version"] == "2022-11-28"
        assert client.base_url == "https://api.github.com"

    @pytest.mark.asyncio
    async def test_context_manager_closes_session(self):
        async with GitHubAPIClient(token="ghp_x") as client:
            session = client.session
        assert session.is_closed


class TestRepositories:
    @pytest.mark.asyncio
    async def test_create_user_repository(self, github_client, github_server):
        repository = await github_client.create_repository(
            "landing", private=False, description="Generated site"
        )

        assert repository.full_name == f"{TEST_LOGIN}/landing"
        assert repository.owner == TEST_LOGIN
        assert repository.private is False
        assert github_server.repository(TEST_LOGIN, "landing").is_empty

    @pytest.mark.asyncio
    async def test_create_org_repository(self, github_client, github_server):
        repository = await github_client.create_repository("tools", organization="acme")
        assert repository.full_name == "acme/tools"
        assert ("acme", "tools") in github_server.repositories

    @pytest.mark.asyncio
    async def test_create_existing_repository(self, github_client, github_server):
        github_server.add_repository(TEST_LOGIN, "landing", files={"a.txt": "a"})

        with pytest.raises(RepositoryExistsError) as exc_info:
            await github_client.create_repository("landing")

        assert exc_info.value.status_code == 422
        assert "already exists" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_create_repository_is_not_retried(self, github_client, github_server):
        github_server.fail("create_repo", status_code=502, times=None)

        with pytest.raises(ServerError):
            await github_client.create_repository("landing")
        assert github_server.count("create_repo") == 1

    @pytest.mark.asyncio
    async def test_get_repository(self, github_client, github_server):
        github_server.add_repository("acme", "site", files={}, default_branch="trunk")
        repository = await github_client.get_repository("acme", "site")
        assert repository.default_branch == "trunk"

    @pytest.mark.asyncio
    async def test_get_missing_repository(self, github_client):
        with pytest.raises(RepositoryNotFoundError):
            await github_client.get_repository("acme", "ghost")

    @pytest.mark.asyncio
    async def test_bad_token(self, github_server, fast_retry):
        async with GitHubAPIClient(
            token="wrong", base_url=github_server.base_url, retry=fast_retry
        ) as client:
            with pytest.raises(AuthenticationError, match="Bad credentials"):
                await client.get_repository("acme", "site")
        assert github_server.count("get_repo") == 1


class TestContents:
    @pytest.mark.asyncio
    async def test_put_file_seeds_empty_repository(self, github_client, github_server):
        github_server.add_repository("acme", "site")

        body = await github_client.put_file(
            "acme", "site", "README.md", "# site ✨", "Initial commit", branch="main"
        )

        tip = github_server.branch_tip("acme", "site", "main")
        assert body["commit"]["sha"] == tip
        assert github_server.files_at("acme", "site", tip) == {"README.md": "# site ✨"}

    @pytest.mark.asyncio
    async def test_put_file_into_missing_repository(self, github_client):
        with pytest.raises(RepositoryNotFoundError):
            await github_client.put_file("acme", "ghost", "a.txt", "a", "msg")


class TestRefs:
    @pytest.mark.asyncio
    async def test_get_branch_ref(self, github_client, github_server):
        github_server.add_repository("acme", "site", files={"a.txt": "a"})
        ref = await github_client.get_branch_ref("acme", "site", "main")
        assert ref.ref == "refs/heads/main"
        assert ref.sha == github_server.branch_tip("acme", "site", "main")

    @pytest.mark.asyncio
    async def test_branch_with_slashes(self, github_client, github_server):
        github_server.add_repository("acme", "site", files={"a.txt": "a"})
        tip = github_server.branch_tip("acme", "site", "main")

        created = await github_client.create_branch_ref("acme", "site", "feature/hero", tip)
        fetched = await github_client.get_branch_ref("acme", "site", "feature/hero")

        assert created.sha == tip
        assert fetched.ref == "refs/heads/feature/hero"

    @pytest.mark.asyncio
    async def test_missing_branch(self, github_client, github_server):
        github_server.add_repository("acme", "site", files={"a.txt": "a"})
        with pytest.raises(BranchNotFoundError) as exc_info:
            await github_client.get_branch_ref("acme", "site", "nope")
        assert not isinstance(exc_info.value, EmptyRepositoryError)

    @pytest.mark.asyncio
    async def test_empty_repository(self, github_client, github_server):
        github_server.add_repository("acme", "site")
        with pytest.raises(EmptyRepositoryError) as exc_info:
            await github_client.get_branch_ref("acme", "site", "main")
        assert exc_info.value.status_code == 409

    @pytest.mark.asyncio
    async def test_non_fast_forward_update(self, github_client, github_server):
        github_server.add_repository("acme", "site", files={"a.txt": "a"})
        base = github_server.branch_tip("acme", "site", "main")
        github_server.commit_directly("acme", "site", "main", {"b.txt": "b"}, "other")
        commit = await github_client.create_commit(
            "acme", "site", "stale", github_server.get_commit("acme", "site", base).tree, [base]
        )

        with pytest.raises(BranchConflictError):
            await github_client.update_branch_ref("acme", "site", "main", commit.sha)
        assert github_server.count("update_ref") == 1

    @pytest.mark.asyncio
    async def test_update_ref_is_not_retried(self, github_client, github_server):
        github_server.add_repository("acme", "site", files={"a.txt": "a"})
        tip = github_server.branch_tip("acme", "site", "main")
        github_server.fail("update_ref", status_code=503)

        with pytest.raises(ServerError):
            await github_client.update_branch_ref("acme", "site", "main", tip)
        assert github_server.count("update_ref") == 1

    @pytest.mark.asyncio
    async def test_sends_force_false(self, github_client, github_server):
        github_server.add_repository("acme", "site", files={"a.txt": "a"})
        base = github_server.branch_tip("acme", "site", "main")
        github_server.commit_directly("acme", "site", "main", {"b.txt": "b"}, "other")
        # The fake honours force=true, so a rejected rewind proves force was false
        with pytest.raises(BranchConflictError):
            await github_client.update_branch_ref("acme", "site", "main", base)
        assert github_server.branch_tip("acme", "site", "main") != base


class TestGitObjects:
    @pytest.mark.asyncio
    async def test_blob_round_trip_preserves_multibyte_text(self, github_client, github_server):
        github_server.add_repository("acme", "site", files={"a.txt": "a"})
        content = "Grüße 🌍 · 你好，世界 " * 10

        blob = await github_client.create_blob("acme", "site", content)

        assert blob.sha == blob_sha(content.encode("utf-8"))
        assert await github_client.get_blob("acme", "site", blob.sha) == content

    @pytest.mark.asyncio
    async def test_blob_retries_transient_failure(self, github_client, github_server):
        github_server.add_repository("acme", "site", files={"a.txt": "a"})
        github_server.fail("create_blob", status_code=502, times=1)

        blob = await github_client.create_blob("acme", "site", "retry me")

        assert blob.sha == blob_sha(b"retry me")
        assert github_server.count("create_blob") == 2

    @pytest.mark.asyncio
    async def test_tree_overlays_base(self, github_client, github_server):
        github_server.add_repository("acme", "site", files={"a.txt": "a", "b.txt": "b"})
        base = github_server.get_commit(
            "acme", "site", github_server.branch_tip("acme", "site", "main")
        )
        blob = await github_client.create_blob("acme", "site", "new b")

        tree = await github_client.create_tree(
            "acme", "site", [TreeEntry(path="b.txt", sha=blob.sha)], base_tree_sha=base.tree
        )

        assert tree.blob_map() == {
            "a.txt": blob_sha(b"a"),
            "b.txt": blob.sha,
        }
        fetched = await github_client.get_tree("acme", "site", tree.sha)
        assert fetched.blob_map() == tree.blob_map()
        assert fetched.truncated is False

    @pytest.mark.asyncio
    async def test_create_and_read_commit(self, github_client, github_server):
        github_server.add_repository("acme", "site", files={"a.txt": "a"})
        tip = github_server.branch_tip("acme", "site", "main")
        tree_sha = github_server.get_commit("acme", "site", tip).tree

        created = await github_client.create_commit("acme", "site", "msg", tree_sha, [tip])
        read = await github_client.get_commit("acme", "site", created.sha)

        assert read.tree_sha == tree_sha
        assert read.parent_shas == [tip]
        assert read.message == "msg"

    @pytest.mark.asyncio
    async def test_missing_objects(self, github_client, github_server):
        github_server.add_repository("acme", "site", files={"a.txt": "a"})
        missing = "0" * 40
        with pytest.raises(ObjectNotFoundError):
            await github_client.get_commit("acme", "site", missing)
        with pytest.raises(ObjectNotFoundError):
            await github_client.get_blob("acme", "site", missing)
        with pytest.raises(ObjectNotFoundError):
            await github_client.get_tree("acme", "site", missing)

    @pytest.mark.asyncio
    async def test_tree_with_unknown_blob_is_rejected(self, github_client, github_server):
        github_server.add_repository("acme", "site", files={"a.txt": "a"})
        with pytest.raises(APIClientError) as exc_info:
            await github_client.create_tree(
                "acme", "site", [TreeEntry(path="x.txt", sha="f" * 40)]
            )
        assert exc_info.value.status_code == 422


class TestMalformedSuccessBodies:
    @pytest.mark.asyncio
    async def test_html_body_raises_client_error(self, github_client, github_server):
        github_server.add_repository("acme", "site", files={"a.txt": "a"})
        github_server.reply_raw("create_tree", "<html>Unicorn!</html>", status_code=201)

        with pytest.raises(APIClientError, match="not valid JSON") as exc_info:
            await github_client.create_tree("acme", "site", [])
        assert exc_info.value.status_code == 201

    @pytest.mark.asyncio
    async def test_missing_fields_raise_client_error(self, github_client, github_server):
        github_server.add_repository("acme", "site", files={"a.txt": "a"})
        github_server.reply_raw(
            "get_ref", '{"ref": "refs/heads/main"}', media_type="application/json"
        )

        with pytest.raises(APIClientError, match="Unexpected response format"):
            await github_client.get_branch_ref("acme", "site", "main")

    @pytest.mark.asyncio
    async def test_wrong_field_types_raise_client_error(self, github_client, github_server):
        github_server.add_repository("acme", "site", files={"a.txt": "a"})
        github_server.reply_raw(
            "get_repo",
            '{"name": "site", "owner": "acme"}',
            media_type="application/json",
        )

        with pytest.raises(APIClientError, match="Unexpected response format"):
            await github_client.get_repository("acme", "site")

    @pytest.mark.asyncio
    async def test_non_object_body_raises_client_error(self, github_client, github_server):
        github_server.add_repository("acme", "site", files={"a.txt": "a"})
        github_server.reply_raw("get_commit", "[]", media_type="application/json")

        with pytest.raises(APIClientError, match="Unexpected response format: list"):
            await github_client.get_commit("acme", "site", "0" * 40)


class TestRetriesExhausted:
    @pytest.mark.asyncio
    async def test_persistent_server_error(self, github_server):
        github_server.add_repository("acme", "site", files={"a.txt": "a"})
        github_server.fail("get_ref", status_code=500, times=None)
        retry = RetrySettings(max_retries=1, initial_delay=0.01, jitter_enabled=False)

        async with GitHubAPIClient(
            token=TEST_TOKEN, base_url=github_server.base_url, retry=retry
        ) as client:
            with pytest.raises(ServerError):
                await client.get_branch_ref("acme", "site", "main")

        assert github_server.count("get_ref") == 2
