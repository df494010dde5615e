#!/usr/bin/env python3
"""
Seed script — creates a realistic dataset for exercising the feeds.

Creates:
  • 10 users (two of them private)
  • A follow graph (each user follows 4 others; follows of private
    accounts start PENDING)
  • 5 posts per user with mixed visibility, plus a few replies
  • Likes / reposts / bookmarks with matching counters
  • A couple of blocks and mutes
  • Hashtags with running post counts

Writes straight to the datastore configured in feed_engine.config, e.g.:
  DATABASE_URL=sqlite+aiosqlite:///./feed.db python scripts/seed_data.py

All user ids are printed so you can use them in curl commands.
"""
import argparse
import asyncio
import random
import re
from collections import Counter

from feed_engine.database import AsyncSessionLocal, init_db
from feed_engine.models import (
    Block,
    Bookmark,
    Follow,
    FollowStatus,
    Hashtag,
    Like,
    Mute,
    Post,
    Repost,
    User,
    Visibility,
)

BASE_USERS = [
    ("alice_ai", "Alice Chen", False),
    ("bob_builder", "Bob Martinez", False),
    ("carol_codes", "Carol Singh", True),
    ("dave_designs", "Dave Kim", False),
    ("eve_engineer", "Eve Johnson", False),
    ("frank_feeds", "Frank Williams", False),
    ("grace_graphs", "Grace Li", True),
    ("henry_hpc", "Henry Brown", False),
    ("iris_infra", "Iris Davis", False),
    ("jack_ml", "Jack Wilson", False),
]

SAMPLE_POSTS = [
    "Just shipped a new feature to production 🚀 Zero downtime deploys are beautiful. #devops",
    "Cursor pagination beats OFFSET every time once the table gets big. #databases",
    "TIL: caching the follow list but never the block list is a deliberate choice. #privacy",
    "Fan-out on write vs pull-on-read — the eternal debate in feed architecture. #systemdesign",
    "Explore ranks comments above reposts above likes. Views barely move the needle. #ranking",
    "N+1 queries are the silent killer of every feed endpoint I have profiled. #databases",
    "Three batched existence queries instead of one per post. Latency dropped 10x. #performance",
    "Muting is one-way, blocking is two-way. Users notice when you get that wrong. #privacy",
    "OpenTelemetry traces finally connected to Jaeger. The waterfall diagram is so satisfying. #observability",
    "Distributed SQL with TiDB — horizontal scaling without changing your SQL dialect. #databases",
    "The beauty of a well-designed content feed: you never feel like you are searching.",
    "Content moderation at scale is a harder problem than the ranking model. #ranking",
    "Redis went down for five minutes and nobody noticed. Read-through caches FTW. #devops",
    "Grafana dashboards are the first thing I build for any new service. #observability",
    "Prometheus metrics: the difference between knowing and guessing in production. #observability",
    "My Redis memory usage spiked 3x after forgetting to set TTLs. 🤦 #devops",
]

REPLIES = [
    "Totally agree with this.",
    "Hard disagree, but interesting take.",
    "Saving this for later!",
]

HASHTAG_REGEX = re.compile(r"#(\w+)")

VISIBILITY_WEIGHTS = [
    (Visibility.PUBLIC, 0.7),
    (Visibility.FOLLOWERS, 0.2),
    (Visibility.PRIVATE, 0.1),
]


def _pick_visibility() -> Visibility:
    choices, weights = zip(*VISIBILITY_WEIGHTS)
    return random.choices(choices, weights=weights, k=1)[0]


async def seed() -> None:
    await init_db()

    async with AsyncSessionLocal() as db:
        # ── Create users ─────────────────────────────────────────────────
        print("Creating users...")
        users: list[User] = []
        for username, display_name, is_private in BASE_USERS:
            user = User(username=username, display_name=display_name, is_private=is_private)
            db.add(user)
            users.append(user)
        await db.flush()
        for user in users:
            print(f"  ✓ {user.username} ({user.id}){' [private]' if user.is_private else ''}")

        # ── Create follow graph ───────────────────────────────────────────
        print("\nCreating follow relationships...")
        follows = 0
        for follower in users:
            # users[0] blocks users[9] below, so no edge between them
            others = [
                u for u in users
                if u is not follower and {follower, u} != {users[0], users[9]}
            ]
            targets = random.sample(others, k=4)
            for target in targets:
                status = FollowStatus.PENDING if target.is_private else FollowStatus.ACCEPTED
                db.add(Follow(follower_id=follower.id, following_id=target.id, status=status))
                follows += 1
        print(f"  ✓ {follows} follow edges")

        # ── Create posts ──────────────────────────────────────────────────
        print("\nCreating posts...")
        posts: list[Post] = []
        tag_counts: Counter = Counter()
        pool = SAMPLE_POSTS * 4
        random.shuffle(pool)
        for i, content in enumerate(pool[: len(users) * 5]):
            author = users[i % len(users)]
            post = Post(author_id=author.id, content=content, visibility=_pick_visibility())
            db.add(post)
            posts.append(post)
            tag_counts.update(t.lower() for t in HASHTAG_REGEX.findall(content))

        await db.flush()  # post ids are needed for replies and interactions

        for parent in random.sample(posts, k=8):
            replier = random.choice(users)
            db.add(Post(author_id=replier.id, parent_id=parent.id, content=random.choice(REPLIES)))
            parent.comments_count += 1
        print(f"  ✓ {len(posts)} posts + 8 replies")

        # ── Interactions ──────────────────────────────────────────────────
        print("\nAdding likes, reposts and bookmarks...")
        for post in posts:
            for user in random.sample(users, k=random.randint(0, 5)):
                db.add(Like(user_id=user.id, post_id=post.id))
                post.likes_count += 1
            for user in random.sample(users, k=random.randint(0, 2)):
                db.add(Repost(user_id=user.id, post_id=post.id))
                post.reposts_count += 1
            for user in random.sample(users, k=random.randint(0, 2)):
                db.add(Bookmark(user_id=user.id, post_id=post.id))
            post.views_count = random.randint(0, 2000)

        # ── Blocks / mutes ────────────────────────────────────────────────
        db.add(Block(blocker_id=users[0].id, blocked_id=users[9].id))
        db.add(Mute(muter_id=users[1].id, muted_id=users[4].id))

        for tag, count in tag_counts.items():
            db.add(Hashtag(tag=tag, post_count=count))

        await db.commit()

    # ── Print summary ─────────────────────────────────────────────────────
    api_url = "http://localhost:8000"
    u = users[0].id
    print("\n" + "=" * 60)
    print("Seed complete! Here are some commands to try:\n")
    print(f"# Home feed for '{users[0].username}':")
    print(f"  curl -s '{api_url}/feed/home?viewer_id={u}' | python3 -m json.tool\n")
    print(f"# Following feed:")
    print(f"  curl -s '{api_url}/feed/following?viewer_id={u}&limit=5' | python3 -m json.tool\n")
    print(f"# Explore (anonymous):")
    print(f"  curl -s '{api_url}/feed/explore' | python3 -m json.tool\n")
    print(f"# Trending hashtags:")
    print(f"  curl -s '{api_url}/feed/trending/hashtags' | python3 -m json.tool\n")
    print(f"# Check Jaeger traces: http://localhost:16686")
    print(f"# Check Prometheus: http://localhost:9090")
    print("=" * 60)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed the feed engine datastore")
    parser.add_argument("--seed", type=int, default=None, help="Random seed for a repeatable dataset")
    args = parser.parse_args()
    if args.seed is not None:
        random.seed(args.seed)
    asyncio.run(seed())
