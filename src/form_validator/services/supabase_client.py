"""Supabase クライアント生成"""

import os

from supabase import Client, create_client


def build_supabase_client() -> Client:
    url = os.environ.get('SUPABASE_URL')
    key = os.environ.get('SUPABASE_SERVICE_ROLE_KEY')
    if not url or not key:
        raise RuntimeError('SUPABASE_URL / SUPABASE_SERVICE_ROLE_KEY is required')
    # 基本妥当性検証（https強制）
    if not str(url).startswith('https://'):
        raise ValueError('SUPABASE_URL must start with https://')
    return create_client(url, key)
