import os
import tempfile

# Settings are read when app.main is imported, so pin them before collection.
os.environ.setdefault("AC_OTEL_ENABLED", "false")
os.environ.setdefault("AC_STORAGE_BACKEND", "memory")
os.environ.setdefault("AC_OBJECT_STORE_ROOT", tempfile.mkdtemp(prefix="advert-images-"))
os.environ.setdefault("AC_SUPABASE_URL", "https://example.supabase.co")
os.environ.setdefault("AC_SUPABASE_ANON_KEY", "anon-key")
