import warnings

# Ignore warnings from fabric_live.shared
warnings.filterwarnings("ignore", category=DeprecationWarning, module="fabric_live.shared.*")

# Import fabric fixtures so they are available to all tests
from tests.fixtures.fabric_fixtures import *  # noqa: E402, F403
