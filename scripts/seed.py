"""Seed a development database with users, media, songs and community content."""
import argparse
import asyncio
import random
import time
from datetime import timedelta

from jevah.database import Base, async_session, engine
from jevah.dependencies import create_access_token
from jevah.models import (
    AudioTrack,
    Forum,
    ForumPost,
    Media,
    Poll,
    PrayerPost,
    User,
    utcnow,
)

ROLES = ["learner", "parent", "educator", "content_creator", "artist", "church_admin"]
MEDIA_TYPES = ["videos", "music", "sermon", "podcast", "ebook", "devotional"]
CATEGORIES = ["worship", "teaching", "youth", "prayer", "gospel", "hymn"]
SINGERS = ["Hillsong", "Sinach", "Maverick City", "CeCe Winans", "Elevation Worship"]
SONGS = [
    "Way Maker", "Oceans", "Goodness of God", "Amazing Grace", "Great Are You Lord",
    "Graves Into Gardens", "Build My Life", "Reckless Love", "King of Kings", "Jireh",
]
FORUMS = [
    ("Bible Study", "Weekly reflections and questions on scripture."),
    ("Youth Fellowship", "A space for young believers to share and grow."),
    ("Worship Team", "Setlists, rehearsal notes and song ideas."),
]


async def seed(small: bool = False) -> None:
    num_users = 10 if small else 50
    num_media = 40 if small else 1000
    num_posts = 20 if small else 500

    print(f"Seeding: {num_users} users, {num_media} media, {len(SONGS)} songs, {num_posts} forum posts")
    start = time.perf_counter()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    async with async_session() as session:
        admin = User(
            username="admin",
            email="admin@jevah.example",
            role="admin",
            push_preferences={},
            notification_preferences={},
        )
        session.add(admin)

        users = []
        for i in range(num_users):
            user = User(
                username=f"member_{i:04d}",
                email=f"member_{i:04d}@jevah.example",
                first_name=f"Member{i}",
                role=random.choice(ROLES),
                bio="Growing in faith one day at a time.",
                push_preferences={},
                notification_preferences={},
            )
            session.add(user)
            users.append(user)
        await session.flush()
        creators = [u for u in users if u.role in ("content_creator", "artist", "church_admin")] or users
        print(f"  Created {len(users) + 1} users")

        now = utcnow()
        for i in range(num_media):
            content_type = random.choice(MEDIA_TYPES)
            status = random.choices(["approved", "pending", "rejected"], weights=[85, 10, 5])[0]
            session.add(
                Media(
                    title=f"{random.choice(CATEGORIES).title()} {content_type} #{i}",
                    description=f"A {content_type} for the {random.choice(CATEGORIES)} season.",
                    speaker=random.choice(creators).first_name,
                    category=random.choice(CATEGORIES),
                    content_type=content_type,
                    file_url=f"https://cdn.jevah.example/media/{i}",
                    duration=random.randint(60, 3600),
                    view_count=random.randint(0, 5000),
                    listen_count=random.randint(0, 2000),
                    like_count=random.randint(0, 500),
                    moderation_status=status,
                    is_hidden=status == "rejected",
                    uploaded_by=random.choice(creators).id,
                    created_at=now - timedelta(days=random.randint(0, 365)),
                )
            )
        await session.flush()
        print(f"  Created {num_media} media items")

        for i, title in enumerate(SONGS):
            session.add(
                AudioTrack(
                    title=title,
                    singer=random.choice(SINGERS),
                    category=random.choice(CATEGORIES),
                    file_url=f"https://cdn.jevah.example/songs/{i}.mp3",
                    duration=random.randint(180, 420),
                    view_count=random.randint(0, 10000),
                    uploaded_by=admin.id,
                )
            )

        forums = [Forum(title=t, description=d, created_by=admin.id) for t, d in FORUMS]
        session.add_all(forums)
        await session.flush()

        participants: dict[int, set[int]] = {f.id: set() for f in forums}
        for i in range(num_posts):
            forum = random.choice(forums)
            author = random.choice(users)
            session.add(
                ForumPost(
                    forum_id=forum.id,
                    user_id=author.id,
                    content=f"Reflection #{i}: grateful for this community.",
                )
            )
            forum.posts_count += 1
            participants[forum.id].add(author.id)
        for forum in forums:
            forum.participants_count = len(participants[forum.id])

        for i in range(num_users // 2):
            session.add(
                PrayerPost(
                    author_id=random.choice(users).id,
                    content=f"Please keep request #{i} in your prayers.",
                    anonymous=random.random() < 0.3,
                )
            )

        session.add(
            Poll(
                question="Which song should open Sunday service?",
                options=random.sample(SONGS, k=4),
                author_id=admin.id,
                closes_at=now + timedelta(days=7),
            )
        )

        await session.commit()
        admin_id = admin.id

    elapsed = time.perf_counter() - start
    print(f"\nSeeding complete in {elapsed:.1f}s")
    print(f"  Forums: {len(FORUMS)}")
    print(f"  Forum posts: {num_posts}")
    print(f"\nAdmin bearer token:\n  {create_access_token(admin_id)}")


def main():
    parser = argparse.ArgumentParser(description="Seed the Jevah database")
    parser.add_argument("--small", action="store_true", help="Use a small dataset")
    args = parser.parse_args()
    asyncio.run(seed(small=args.small))


if __name__ == "__main__":
    main()
