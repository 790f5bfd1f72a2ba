import os
import sys

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.config import settings, validate_configuration
import database
from services.app_state_service import PersistedAppState


def check(condition, ok_msg, fail_msg):
    if condition:
        print(f"OK: {ok_msg}")
        return True
    print(f"FAIL: {fail_msg}")
    return False


def main():
    all_ok = True

    problems = validate_configuration(settings)
    all_ok &= check(not problems, "configuration is complete", "; ".join(problems))
    print(f"INFO: config endpoint = {settings.config_endpoint}")
    print(f"INFO: bundle id = {settings.bundle_id}, store id = {settings.store_id}")
    print(f"INFO: firebase project = {settings.firebase_project_id or '-'}")

    database.create_table()
    db_path = settings.db_path
    all_ok &= check(os.path.exists(db_path), f"{db_path} exists", "DB file not found")
    all_ok &= check(database.table_exists("app_state"), "app_state table exists", "app_state table missing")

    state = PersistedAppState().load()
    print(f"INFO: app mode = {state.app_mode.value}, first launch = {state.is_first_launch}")
    print(f"INFO: current url = {state.current_url or '-'}, expires = {state.url_expires_at or '-'}")

    if all_ok:
        print("OK: health_check finished successfully.")
        return 0
    print("FAIL: health_check finished with errors.")
    return 1

if __name__ == "__main__":
    raise SystemExit(main())
