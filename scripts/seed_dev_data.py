#!/usr/bin/env python3
"""Seed a development database with organizations, users, a group and videos.

Usage:
    uv run python scripts/seed_dev_data.py

Uses VC_DATABASE_URL (or the default local PostgreSQL). Every account's
password is `password123`. Seeded videos have no backing file, so streaming
them returns 404.
"""

import asyncio
import json
import uuid

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.auth import hash_password
from app.core.config import get_settings

DATABASE_URL = get_settings().database_url
PASSWORD = "password123"

# Deterministic UUIDs for reproducibility
ORG_IDS = [uuid.UUID(f"00000000-0000-0000-0000-00000000000{i}") for i in (1, 2)]
USER_IDS = [uuid.UUID(f"00000000-0000-0000-0000-0000000000{i}") for i in (10, 11, 12)]
GROUP_ID = uuid.UUID("00000000-0000-0000-0000-000000000100")
VIDEO_IDS = [uuid.UUID(f"00000000-0000-0000-0000-0000000002{i:02d}") for i in range(3)]


async def seed():
    engine = create_async_engine(DATABASE_URL)
    async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    password_hash = hash_password(PASSWORD)

    async with async_session() as session:
        # Organizations
        orgs = [
            ("TechCorp Inc", "TECHCORP", "contact@techcorp.com", "Leading technology company", "+1-555-0100"),
            ("MediaHub Studios", "MEDIAHUB", "info@mediahub.com", "Creative media production company", "+1-555-0200"),
        ]
        for oid, (name, code, email, description, mobile) in zip(ORG_IDS, orgs):
            await session.execute(text("""
                INSERT INTO organizations (id, name, org_code, email, password_hash, description, mobile)
                VALUES (:id, :name, :code, :email, :pw, :description, :mobile)
                ON CONFLICT (id) DO NOTHING
            """), {"id": oid, "name": name, "code": code, "email": email, "pw": password_hash,
                   "description": description, "mobile": mobile})

        # Users (two in TechCorp, one in MediaHub)
        users = [
            ("John Doe", "johndoe", "john@example.com", ORG_IDS[0]),
            ("Jane Smith", "janesmith", "jane@example.com", ORG_IDS[0]),
            ("Bob Johnson", "bobjohnson", "bob@example.com", ORG_IDS[1]),
        ]
        for uid, (name, username, email, org_id) in zip(USER_IDS, users):
            await session.execute(text("""
                INSERT INTO users (id, name, username, email, password_hash, organization_id)
                VALUES (:id, :name, :username, :email, :pw, :org)
                ON CONFLICT (id) DO NOTHING
            """), {"id": uid, "name": name, "username": username, "email": email,
                   "pw": password_hash, "org": org_id})

        # Group created by John with Jane and Bob
        await session.execute(text("""
            INSERT INTO groups (id, name, description, created_by)
            VALUES (:id, 'Marketing Team', 'Marketing and promotional content', :creator)
            ON CONFLICT (id) DO NOTHING
        """), {"id": GROUP_ID, "creator": USER_IDS[0]})
        for uid in USER_IDS:
            await session.execute(text("""
                INSERT INTO group_memberships (group_id, user_id)
                VALUES (:gid, :uid)
                ON CONFLICT DO NOTHING
            """), {"gid": GROUP_ID, "uid": uid})

        # Videos: private, group-shared (editor) and org-shared (viewer)
        videos = [
            ("Product Demo", ["demo", "product"], "safe", False, None),
            ("Campaign Draft", ["marketing"], "processing", False, "editor"),
            ("All Hands Recording", ["company"], "flagged", True, None),
        ]
        for position, (vid, (name, tags, status, org_enabled, group_role)) in enumerate(zip(VIDEO_IDS, videos)):
            await session.execute(text("""
                INSERT INTO videos (id, filename, file_path, video_type, name, tags, status,
                                    owner_id, org_access_enabled, org_access_role)
                VALUES (:id, :filename, :path, 'video/mp4', :name, CAST(:tags AS JSONB), :status,
                        :owner, :org_enabled, 'viewer')
                ON CONFLICT (id) DO NOTHING
            """), {"id": vid, "filename": f"seed-{position}.mp4", "path": f"uploads/videos/seed-{position}.mp4",
                   "name": name, "tags": json.dumps(tags), "status": status,
                   "owner": USER_IDS[0], "org_enabled": org_enabled})
            if group_role:
                await session.execute(text("""
                    INSERT INTO video_group_access (video_id, group_id, role, position)
                    VALUES (:vid, :gid, :role, 0)
                    ON CONFLICT DO NOTHING
                """), {"vid": vid, "gid": GROUP_ID, "role": group_role})

        await session.commit()

    await engine.dispose()
    print("✅ Seeded 2 organizations, 3 users, 1 group, 3 videos.")


if __name__ == "__main__":
    asyncio.run(seed())
