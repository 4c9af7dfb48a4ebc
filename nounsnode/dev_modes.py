import os

from dotenv import load_dotenv

load_dotenv()

def flag(name, default="false"):
    return os.getenv(name, default).lower() in ('true', '1')

CAPTURE_CLIENT_OUTPUTS_TO_DISK = flag('CAPTURE_CLIENT_OUTPUTS_TO_DISK')
PROFILE_ARCHIVE_CLIENT = flag('PROFILE_ARCHIVE_CLIENT')
RESOLVE_NAMES_DURING_INGEST = flag('RESOLVE_NAMES_DURING_INGEST', "true")
ENABLE_STATUS_REFRESHER = flag('ENABLE_STATUS_REFRESHER', "true")
