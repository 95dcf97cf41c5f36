"""Process exit codes used by the renodes CLI."""

SUCCESS = 0
GENERAL_ERROR = 1
USAGE_ERROR = 2
DATABASE_ERROR = 3
EXECUTION_FAILURE = 4
NOT_FOUND = 5
WRITE_CONFLICT = 6
STATE_UNKNOWN = 7
CHAIN_BROKEN = 8
DROP_SAFETY = 9
