#!/usr/bin/env python
"""Seed development database with demo accounts.

Seeds three demo users, a follow graph, and a few public posts so the feeds
have something to show during local UI testing.

Constraints:
- Refuses to run in staging or prod (AGORA_ENV check)
- Idempotent via ON CONFLICT DO NOTHING
- Never runs automatically (manual invocation only)

The demo ids are fixed so tokens minted by Supabase local for the same
users resolve to these profiles.

Usage:
    cd python && DATABASE_URL=... uv run python ../scripts/seed_dev.py
"""

import json
import os
import sys

DEMO_USERS = [
    ("00000000-0000-4000-8000-000000000001", "ada", "Ada"),
    ("00000000-0000-4000-8000-000000000002", "grace", "Grace"),
    ("00000000-0000-4000-8000-000000000003", "linus", "Linus"),
]

# (follower username, following username)
DEMO_FOLLOWS = [("ada", "grace"), ("grace", "ada"), ("linus", "ada")]

DEMO_POSTS = [
    ("00000000-0000-4000-9000-000000000001", "ada", "First post on #agora", ["agora"]),
    ("00000000-0000-4000-9000-000000000002", "grace", "Hello @ada, welcome!", []),
    ("00000000-0000-4000-9000-000000000003", "linus", "Shipping #python today", ["python"]),
]


def main():
    # 1. Environment check (hard fail in staging/prod)
    agora_env = os.getenv("AGORA_ENV", "local")
    if agora_env not in ("local", "test"):
        print(f"ERROR: seed_dev.py refuses to run in AGORA_ENV={agora_env}")
        sys.exit(1)

    # 2. Check DATABASE_URL
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        print("ERROR: DATABASE_URL environment variable must be set")
        sys.exit(1)

    from sqlalchemy import create_engine, text

    engine = create_engine(database_url)
    ids = {username: user_id for user_id, username, _ in DEMO_USERS}
    created = {"users": 0, "follows": 0, "posts": 0}

    with engine.connect() as conn:
        # 3. Idempotent seeding
        for user_id, username, display_name in DEMO_USERS:
            result = conn.execute(
                text("""
                    INSERT INTO users (id, username, display_name)
                    VALUES (:id, :username, :display_name)
                    ON CONFLICT DO NOTHING
                    RETURNING id
                """),
                {"id": user_id, "username": username, "display_name": display_name},
            )
            created["users"] += result.fetchone() is not None

        for follower, following in DEMO_FOLLOWS:
            result = conn.execute(
                text("""
                    INSERT INTO follows (follower_id, following_id)
                    VALUES (:follower_id, :following_id)
                    ON CONFLICT DO NOTHING
                    RETURNING follower_id
                """),
                {"follower_id": ids[follower], "following_id": ids[following]},
            )
            created["follows"] += result.fetchone() is not None

        for post_id, author, body, tags in DEMO_POSTS:
            result = conn.execute(
                text("""
                    INSERT INTO posts (id, author_id, content, tags)
                    VALUES (:id, :author_id, :body, CAST(:tags AS jsonb))
                    ON CONFLICT (id) DO NOTHING
                    RETURNING id
                """),
                {"id": post_id, "author_id": ids[author], "body": body, "tags": json.dumps(tags)},
            )
            created["posts"] += result.fetchone() is not None

        conn.commit()

    # 4. Report
    db_display = database_url.split("@")[1] if "@" in database_url else database_url
    print(f"Database: {db_display}")
    print(f"AGORA_ENV: {agora_env}")
    print()
    for kind, count in created.items():
        print(f"✓ Created {count} {kind}")
    print()
    print("Note: demo users have no Supabase auth accounts.")
    print("Create matching auth users in Supabase local to sign in as them.")


if __name__ == "__main__":
    main()
