#!/usr/bin/env python3
"""
Seed the first platform admin.

Reads PLATFORM_ADMIN_EMAIL, PLATFORM_ADMIN_PASSWORD and optionally
PLATFORM_ADMIN_NAME from the .env file. Needs SUPABASE_SERVICE_ROLE_KEY.
Run from project root: python scripts/seed_platform_admin.py
"""

import os
import sys

from dotenv import load_dotenv

project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
load_dotenv(os.path.join(project_root, ".env"))

from shopflows.auth.permissions import PLATFORM_ADMIN
from shopflows.config import settings
from shopflows.db import SupabaseClient


def main():
    email = os.getenv("PLATFORM_ADMIN_EMAIL")
    password = os.getenv("PLATFORM_ADMIN_PASSWORD")
    name = os.getenv("PLATFORM_ADMIN_NAME", "Platform Admin")

    if not email or not password:
        print("Error: PLATFORM_ADMIN_EMAIL and PLATFORM_ADMIN_PASSWORD must be set in .env")
        sys.exit(1)
    if not settings.supabase_service_role_key:
        print("Error: SUPABASE_SERVICE_ROLE_KEY must be set to create auth users")
        sys.exit(1)

    supabase = SupabaseClient.get_service_client()

    existing = supabase.table("users").select("id, role").eq("email", email).execute()
    if existing.data:
        print(f"User with email '{email}' already exists (role: {existing.data[0]['role']}).")
        sys.exit(0)

    auth_response = supabase.auth.admin.create_user({
        "email": email,
        "password": password,
        "email_confirm": True,
    })
    if not auth_response.user:
        print("Error: Failed to create auth user")
        sys.exit(1)

    result = supabase.table("users").insert({
        "auth_id": auth_response.user.id,
        "email": email,
        "full_name": name,
        "role": PLATFORM_ADMIN,
        "org_id": None,
    }).execute()

    if result.data:
        user = result.data[0]
        print("Created platform admin:")
        print(f"  ID: {user['id']}")
        print(f"  Auth ID: {auth_response.user.id}")
        print(f"  Email: {user['email']}")
    else:
        print("Error: Failed to create users row")
        sys.exit(1)


if __name__ == "__main__":
    main()
