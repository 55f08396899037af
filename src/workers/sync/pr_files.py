"""Pull request file (diff) sync."""

import logging
from dataclasses import dataclass

from src.github import GitHubClient, GitHubNotFoundError, decode_lenient
from src.github.schemas import PullRequestFile
from src.repositories import PullRequestFileRepository

from .interfaces import GitHubClientProvider, RepoContext
from .transforms import pull_request_file_record
from .writer import MirrorWriter

logger = logging.getLogger(__name__)

MAX_FILES_PER_PR = 300
MAX_PATCH_BYTES = 100_000
PAGE_SIZE = 100


@dataclass
class PrFilesResult:
    file_count: int = 0
    truncated_patches: int = 0


async def sync_pr_files(
    client: GitHubClient,
    writer: MirrorWriter,
    ctx: RepoContext,
    number: int,
    head_sha: str,
) -> PrFilesResult:
    """Fetch the changed files of a pull request and upsert them.

    Patches larger than MAX_PATCH_BYTES are stored as None and counted as
    truncated. A pull request GitHub no longer knows yields an empty result.
    """
    path = f"{ctx.api_path}/pulls/{number}/files"
    files: list[PullRequestFile] = []
    page = 1
    try:
        while len(files) < MAX_FILES_PER_PR:
            response = await client.fetch_page(path, page=page, per_page=PAGE_SIZE)
            decoded = decode_lenient(PullRequestFile, response.items)
            await writer.dead_letter(
                decoded.skipped, f"pr-files:{ctx.repository_id}:{number}:page{page}", "sync"
            )
            files.extend(decoded.items)
            if decoded.total < PAGE_SIZE:
                break
            page += 1
    except GitHubNotFoundError:
        logger.info(f"Pull request {ctx.full_name}#{number} not found, no files synced")
        return PrFilesResult()

    result = PrFilesResult()
    records = []
    for file in files[:MAX_FILES_PER_PR]:
        patch = file.patch
        if patch is not None and len(patch.encode("utf-8")) > MAX_PATCH_BYTES:
            patch = None
            result.truncated_patches += 1
        records.append(
            pull_request_file_record(ctx.repository_id, number, head_sha, file, patch)
        )

    await writer.upsert(PullRequestFileRepository, records)
    result.file_count = len(records)
    logger.debug(
        f"Synced {result.file_count} files for {ctx.full_name}#{number} "
        f"({result.truncated_patches} patches dropped)"
    )
    return result


class PullRequestFileSync:
    """Resolves a client for the repository, then runs ``sync_pr_files``."""

    def __init__(self, clients: GitHubClientProvider, writer: MirrorWriter):
        self.clients = clients
        self.writer = writer

    async def sync(self, ctx: RepoContext, number: int, head_sha: str) -> PrFilesResult:
        async with await self.clients.for_repository(ctx) as client:
            return await sync_pr_files(client, self.writer, ctx, number, head_sha)
