STATE_DIR_NAME = ".opencode"
DEFAULT_PLAN_DIR = f"{STATE_DIR_NAME}/plans"
DEFAULT_PLAN_NAME = "PLAN.md"
LOOP_STATE_FILE = f"{STATE_DIR_NAME}/plan-loop.local.json"
LOOP_LOCK_SUFFIX = ".lock"
CONFIG_FILE = "plan-loop.yaml"

DEFAULT_COMMIT_TAG = "feat(loop)"
DEFAULT_FREEFORM_MAX_ITERATIONS = 2
DEFAULT_PLAN_MAX_ITERATIONS = 0  # 0 = unbounded
DEFAULT_MESSAGE_LOOKBACK = 5
DEFAULT_LOCK_TIMEOUT_SECONDS = 30.0
DEFAULT_HOST_TIMEOUT_SECONDS = 30.0

MAX_SLUG_LENGTH = 50
OVERVIEW_PREVIEW_CHARS = 200
DESCRIPTION_PREVIEW_CHARS = 60

PROMISE_OPEN_TAG = "<promise>"
PROMISE_CLOSE_TAG = "</promise>"

# Loop-local files that must never end up in a task commit.
GITIGNORE_ENTRIES = (
    f"{STATE_DIR_NAME}/*.local.json",
    f"{STATE_DIR_NAME}/*.local.json.lock",
)
