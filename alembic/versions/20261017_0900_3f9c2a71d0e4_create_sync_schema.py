"""create_sync_schema

Revision ID: 3f9c2a71d0e4
Revises:
Create Date: 2026-10-17 09:00:00.000000+00:00

"""

from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3f9c2a71d0e4"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _ts(name: str, nullable: bool = True) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def _base_columns() -> list[sa.Column]:
    return [
        sa.Column("id", sa.Uuid(), nullable=False),
        _ts("created_at", nullable=False),
        _ts("updated_at", nullable=False),
    ]


def _repo_fk() -> sa.Column:
    return sa.Column(
        "repository_id",
        sa.BigInteger(),
        sa.ForeignKey("repositories.github_repo_id"),
        nullable=False,
    )


def upgrade() -> None:
    """Apply migration changes."""
    op.create_table(
        "installations",
        *_base_columns(),
        sa.Column("installation_id", sa.BigInteger(), nullable=False),
        sa.Column("account_login", sa.String(255), nullable=False),
        sa.Column("account_type", sa.String(32), nullable=False),
        _ts("suspended_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("account_login", name="uq_installations_account_login"),
    )
    op.create_index("ix_installations_installation_id", "installations", ["installation_id"])

    op.create_table(
        "repositories",
        *_base_columns(),
        sa.Column("github_repo_id", sa.BigInteger(), nullable=False),
        sa.Column("installation_id", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("owner_login", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(511), nullable=False),
        sa.Column("private", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("visibility", sa.String(32), nullable=False, server_default="public"),
        sa.Column("default_branch", sa.String(255), nullable=True),
        sa.Column("archived", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("disabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("connected_by_user_id", sa.String(255), nullable=True),
        sa.Column("stargazers_count", sa.Integer(), nullable=False, server_default="0"),
        _ts("github_updated_at"),
        _ts("pushed_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("github_repo_id", name="uq_repositories_github_repo_id"),
        sa.UniqueConstraint("full_name", name="uq_repositories_full_name"),
    )
    op.create_index("ix_repositories_installation_id", "repositories", ["installation_id"])

    op.create_table(
        "github_users",
        *_base_columns(),
        sa.Column("github_user_id", sa.BigInteger(), nullable=False),
        sa.Column("login", sa.String(255), nullable=False),
        sa.Column("avatar_url", sa.String(1024), nullable=True),
        sa.Column("site_admin", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("type", sa.String(32), nullable=False, server_default="User"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("github_user_id", name="uq_github_users_github_user_id"),
    )
    op.create_index("ix_github_users_login", "github_users", ["login"])

    op.create_table(
        "branches",
        *_base_columns(),
        _repo_fk(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("head_sha", sa.String(40), nullable=False),
        sa.Column("protected", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("repository_id", "name", name="uq_branch_repo_name"),
    )

    op.create_table(
        "commits",
        *_base_columns(),
        _repo_fk(),
        sa.Column("sha", sa.String(40), nullable=False),
        sa.Column("author_user_id", sa.BigInteger(), nullable=True),
        sa.Column("committer_user_id", sa.BigInteger(), nullable=True),
        sa.Column("message_headline", sa.String(1024), nullable=False, server_default=""),
        _ts("authored_at"),
        _ts("committed_at"),
        sa.Column("additions", sa.Integer(), nullable=True),
        sa.Column("deletions", sa.Integer(), nullable=True),
        sa.Column("changed_files", sa.Integer(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("repository_id", "sha", name="uq_commit_repo_sha"),
    )

    op.create_table(
        "pull_requests",
        *_base_columns(),
        _repo_fk(),
        sa.Column("github_pr_id", sa.BigInteger(), nullable=False),
        sa.Column("number", sa.Integer(), nullable=False),
        sa.Column("state", sa.String(16), nullable=False),
        sa.Column("draft", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("title", sa.String(1024), nullable=False),
        sa.Column("body", sa.Text(), nullable=True),
        sa.Column("author_user_id", sa.BigInteger(), nullable=True),
        sa.Column("assignee_user_ids", JSON_TYPE, nullable=False),
        sa.Column("requested_reviewer_user_ids", JSON_TYPE, nullable=False),
        sa.Column("label_names", JSON_TYPE, nullable=False),
        sa.Column("base_ref_name", sa.String(255), nullable=False),
        sa.Column("head_ref_name", sa.String(255), nullable=False),
        sa.Column("head_sha", sa.String(40), nullable=False),
        sa.Column("mergeable_state", sa.String(32), nullable=True),
        _ts("merged_at"),
        _ts("closed_at"),
        _ts("github_updated_at", nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("repository_id", "number", name="uq_pr_repo_number"),
    )
    op.create_index("ix_pull_requests_repo_state", "pull_requests", ["repository_id", "state"])

    op.create_table(
        "issues",
        *_base_columns(),
        _repo_fk(),
        sa.Column("github_issue_id", sa.BigInteger(), nullable=False),
        sa.Column("number", sa.Integer(), nullable=False),
        sa.Column("state", sa.String(16), nullable=False),
        sa.Column("title", sa.String(1024), nullable=False),
        sa.Column("body", sa.Text(), nullable=True),
        sa.Column("author_user_id", sa.BigInteger(), nullable=True),
        sa.Column("assignee_user_ids", JSON_TYPE, nullable=False),
        sa.Column("label_names", JSON_TYPE, nullable=False),
        sa.Column("comment_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_pull_request", sa.Boolean(), nullable=False, server_default=sa.false()),
        _ts("closed_at"),
        _ts("github_updated_at", nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("repository_id", "number", name="uq_issue_repo_number"),
    )
    op.create_index("ix_issues_repo_state", "issues", ["repository_id", "state"])

    op.create_table(
        "issue_comments",
        *_base_columns(),
        _repo_fk(),
        sa.Column("issue_number", sa.Integer(), nullable=False),
        sa.Column("github_comment_id", sa.BigInteger(), nullable=False),
        sa.Column("author_user_id", sa.BigInteger(), nullable=True),
        sa.Column("body", sa.Text(), nullable=True),
        _ts("github_created_at", nullable=False),
        _ts("github_updated_at", nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "repository_id", "github_comment_id", name="uq_issue_comment_repo_id"
        ),
    )

    op.create_table(
        "pull_request_reviews",
        *_base_columns(),
        _repo_fk(),
        sa.Column("pull_request_number", sa.Integer(), nullable=False),
        sa.Column("github_review_id", sa.BigInteger(), nullable=False),
        sa.Column("author_user_id", sa.BigInteger(), nullable=True),
        sa.Column("state", sa.String(32), nullable=False),
        sa.Column("body", sa.Text(), nullable=True),
        _ts("submitted_at"),
        sa.Column("commit_sha", sa.String(40), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("repository_id", "github_review_id", name="uq_review_repo_id"),
    )

    op.create_table(
        "pull_request_review_comments",
        *_base_columns(),
        _repo_fk(),
        sa.Column("pull_request_number", sa.Integer(), nullable=False),
        sa.Column("github_review_comment_id", sa.BigInteger(), nullable=False),
        sa.Column("github_review_id", sa.BigInteger(), nullable=True),
        sa.Column("in_reply_to_github_review_comment_id", sa.BigInteger(), nullable=True),
        sa.Column("author_user_id", sa.BigInteger(), nullable=True),
        sa.Column("body", sa.Text(), nullable=False, server_default=""),
        sa.Column("path", sa.String(1024), nullable=False),
        sa.Column("line", sa.Integer(), nullable=True),
        sa.Column("original_line", sa.Integer(), nullable=True),
        sa.Column("start_line", sa.Integer(), nullable=True),
        sa.Column("side", sa.String(8), nullable=True),
        sa.Column("start_side", sa.String(8), nullable=True),
        sa.Column("commit_sha", sa.String(40), nullable=True),
        sa.Column("original_commit_sha", sa.String(40), nullable=True),
        sa.Column("html_url", sa.String(1024), nullable=True),
        _ts("github_created_at", nullable=False),
        _ts("github_updated_at", nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "repository_id", "github_review_comment_id", name="uq_review_comment_repo_id"
        ),
    )

    op.create_table(
        "pull_request_files",
        *_base_columns(),
        _repo_fk(),
        sa.Column("pull_request_number", sa.Integer(), nullable=False),
        sa.Column("head_sha", sa.String(40), nullable=False),
        sa.Column("filename", sa.String(1024), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("additions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("deletions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("changes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("patch", sa.Text(), nullable=True),
        sa.Column("previous_filename", sa.String(1024), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "repository_id",
            "pull_request_number",
            "filename",
            name="uq_pr_file_repo_number_filename",
        ),
    )

    op.create_table(
        "check_runs",
        *_base_columns(),
        _repo_fk(),
        sa.Column("github_check_run_id", sa.BigInteger(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("head_sha", sa.String(40), nullable=False),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("conclusion", sa.String(32), nullable=True),
        _ts("started_at"),
        _ts("completed_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "repository_id", "github_check_run_id", name="uq_check_run_repo_id"
        ),
    )
    op.create_index("ix_check_runs_repo_head_sha", "check_runs", ["repository_id", "head_sha"])

    op.create_table(
        "workflow_runs",
        *_base_columns(),
        _repo_fk(),
        sa.Column("github_run_id", sa.BigInteger(), nullable=False),
        sa.Column("workflow_id", sa.BigInteger(), nullable=False),
        sa.Column("workflow_name", sa.String(255), nullable=True),
        sa.Column("run_number", sa.Integer(), nullable=False),
        sa.Column("run_attempt", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("event", sa.String(64), nullable=False),
        sa.Column("status", sa.String(32), nullable=True),
        sa.Column("conclusion", sa.String(32), nullable=True),
        sa.Column("head_branch", sa.String(255), nullable=True),
        sa.Column("head_sha", sa.String(40), nullable=False),
        sa.Column("actor_user_id", sa.BigInteger(), nullable=True),
        sa.Column("html_url", sa.String(1024), nullable=True),
        _ts("run_created_at", nullable=False),
        _ts("run_updated_at", nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("repository_id", "github_run_id", name="uq_workflow_run_repo_id"),
    )

    op.create_table(
        "workflow_jobs",
        *_base_columns(),
        _repo_fk(),
        sa.Column("github_job_id", sa.BigInteger(), nullable=False),
        sa.Column("github_run_id", sa.BigInteger(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("conclusion", sa.String(32), nullable=True),
        _ts("started_at"),
        _ts("completed_at"),
        sa.Column("runner_name", sa.String(255), nullable=True),
        sa.Column("steps_json", JSON_TYPE, nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("repository_id", "github_job_id", name="uq_workflow_job_repo_id"),
    )
    op.create_index("ix_workflow_jobs_github_run_id", "workflow_jobs", ["github_run_id"])

    op.create_table(
        "repository_counters",
        *_base_columns(),
        sa.Column("repository_id", sa.BigInteger(), nullable=False),
        sa.Column("open_pull_requests", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("open_issues", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("check_runs", sa.Integer(), nullable=False, server_default="0"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("repository_id", name="uq_repository_counters_repository_id"),
    )

    op.create_table(
        "dead_letters",
        *_base_columns(),
        sa.Column("delivery_id", sa.String(255), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("payload_json", sa.Text(), nullable=False),
        sa.Column("source", sa.String(32), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_dead_letters_delivery_id", "dead_letters", ["delivery_id"])
    op.create_index("ix_dead_letters_source", "dead_letters", ["source"])

    op.create_table(
        "sync_jobs",
        *_base_columns(),
        sa.Column("lock_key", sa.String(255), nullable=False),
        sa.Column("job_type", sa.String(32), nullable=False),
        sa.Column("scope_type", sa.String(32), nullable=False),
        sa.Column("trigger_reason", sa.String(32), nullable=False),
        sa.Column("installation_id", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("repository_id", sa.BigInteger(), nullable=True),
        sa.Column("entity_type", sa.String(64), nullable=True),
        sa.Column("state", sa.String(32), nullable=False, server_default="pending"),
        sa.Column("attempt_count", sa.Integer(), nullable=False, server_default="0"),
        _ts("next_run_at"),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("current_step", sa.String(255), nullable=True),
        sa.Column("completed_steps", JSON_TYPE, nullable=False),
        sa.Column("items_fetched", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("journal", JSON_TYPE, nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("lock_key", name="uq_sync_jobs_lock_key"),
    )
    op.create_index(
        "ix_sync_jobs_installation_state", "sync_jobs", ["installation_id", "state"]
    )
    op.create_index("ix_sync_jobs_state_updated_at", "sync_jobs", ["state", "updated_at"])

    op.create_table(
        "repository_permissions",
        *_base_columns(),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("repository_id", sa.BigInteger(), nullable=False),
        sa.Column("pull", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("triage", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("push", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("maintain", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("admin", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("role_name", sa.String(64), nullable=True),
        _ts("synced_at", nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "repository_id", name="uq_permission_user_repo"),
    )
    op.create_index(
        "ix_repository_permissions_repository_id", "repository_permissions", ["repository_id"]
    )

    op.create_table(
        "oauth_accounts",
        *_base_columns(),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("github_user_id", sa.BigInteger(), nullable=True),
        sa.Column("access_token", sa.Text(), nullable=True),
        sa.Column("refresh_token", sa.Text(), nullable=True),
        _ts("access_token_expires_at"),
        _ts("refresh_token_expires_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", name="uq_oauth_accounts_user_id"),
    )


def downgrade() -> None:
    """Revert migration changes."""
    for table in (
        "oauth_accounts",
        "repository_permissions",
        "sync_jobs",
        "dead_letters",
        "repository_counters",
        "workflow_jobs",
        "workflow_runs",
        "check_runs",
        "pull_request_files",
        "pull_request_review_comments",
        "pull_request_reviews",
        "issue_comments",
        "issues",
        "pull_requests",
        "commits",
        "branches",
        "github_users",
        "repositories",
        "installations",
    ):
        op.drop_table(table)
