"""
Diversity seeding for phase1

Gives the idea phase two nudges away from repeating itself:
- the titles of games that are already deployed
- a genre seed not used by the most recent jobs
"""
import logging
import random
from typing import List, Optional, Sequence, Tuple

from services.deployer import Deployer
from services.job_store import JobStore

logger = logging.getLogger(__name__)

GENRE_SEEDS = (
    "dungeon-crawler",
    "space-combat",
    "fishing-and-gathering",
    "factory-automation",
    "monster-tamer",
    "lane-battle",
    "tower-defense",
    "wave-survival",
    "exploration-and-mapping",
    "racing-and-dodging",
    "farming-and-ecosystem",
    "puzzle-combat",
    "pirate-ship-battles",
    "spell-crafting-arena",
    "train-network",
    "underwater-exploration",
)

GENRE_SEED_KEY = "genreSeed"


def recent_genre_seeds(store: JobStore, history_size: int) -> List[str]:
    """Seeds recorded by the newest `history_size` jobs"""
    seeds = []
    for job in store.get_jobs(limit=history_size):
        seed = (job.phase_outputs or {}).get(GENRE_SEED_KEY)
        if isinstance(seed, str):
            seeds.append(seed)
    return seeds


def pick_genre_seed(recent: Sequence[str], rng: Optional[random.Random] = None) -> str:
    """Uniform pick among seeds not recently used; the full catalog if all were"""
    rng = rng or random
    recent_set = set(recent)
    candidates = [g for g in GENRE_SEEDS if g not in recent_set] or list(GENRE_SEEDS)
    return rng.choice(candidates)


def build_diversity_env(
    job_id: int,
    store: JobStore,
    deployer: Deployer,
    history_size: int,
    rng: Optional[random.Random] = None,
) -> Tuple[str, ...]:
    """
    Environment additions for a phase1 execution unit

    Never raises; any failure just drops the affected hint.

    Returns:
        KEY=VALUE pairs (EXISTING_GAME_NAMES, GENRE_SEED)
    """
    env = []

    try:
        titles = [g.title or g.name for g in deployer.list_deployed()]
        if titles:
            env.append(f"EXISTING_GAME_NAMES={', '.join(titles)}")
    except Exception as e:
        logger.warning(f"[Diversity job-{job_id}] Could not list deployed games: {e}")

    try:
        seed = pick_genre_seed(recent_genre_seeds(store, history_size), rng)
        store.update_phase_output(job_id, GENRE_SEED_KEY, seed)
        env.append(f"GENRE_SEED={seed}")
        store.add_log(job_id, "info", f"Genre seed: {seed}")
        logger.info(f"[Diversity job-{job_id}] Genre seed: {seed}")
    except Exception as e:
        logger.warning(f"[Diversity job-{job_id}] Could not pick genre seed: {e}")

    return tuple(env)
