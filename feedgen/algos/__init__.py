from typing import Awaitable, Callable, Dict, Optional

from ..config import AppContext
from ..types import FeedSkeleton
from . import swarm_community, swarm_trending

AlgoHandler = Callable[[AppContext, int, Optional[str]], Awaitable[FeedSkeleton]]

algos: Dict[str, AlgoHandler] = {
    swarm_community.shortname: swarm_community.handler,
    swarm_trending.shortname: swarm_trending.handler,
}
