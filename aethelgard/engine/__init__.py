"""Session orchestration: budget ledger, image sampling, turn engine, archival
and the view state machine that ties them together.

A session is one SessionContext driven by one SessionRouter:

  SessionRouter      — views (landing / checking_limits / game / campsite)
  TurnEngine         — one narrative turn: generate, spend, illustrate, reduce
  end_session        — summarise, archive, reset
  BudgetLedger       — per-user request count with lazy 24h reset and rewards
  image_probability  — chance of an illustration given the trailing gap
  reduce             — every GameState change as (state, event) -> state
"""

from .archive import ArchiveResult, end_session  # noqa: F401
from .budget import BudgetLedger  # noqa: F401
from .campsite import CampsiteTimer, countdown  # noqa: F401
from .context import SessionContext  # noqa: F401
from .sampler import image_probability, should_generate_image  # noqa: F401
from .session import SessionRouter  # noqa: F401
from .state import reduce  # noqa: F401
from .teller import StoryTeller  # noqa: F401
from .turn import TurnEngine  # noqa: F401
