"""
Stubborn Soul catalog.

The boss campaign is a fixed, ordered sequence. Entries are frozen models,
built once at import time and shared read-only across the engine.
"""

from pydantic import BaseModel, ConfigDict, Field

from ..errors import CatalogIndexError


class StubbornSoul(BaseModel):
    """A boss the player guides to rest by landing focus-session damage."""
    model_config = ConfigDict(frozen=True)

    id: int = Field(ge=0)
    name: str
    backstory: str = ""
    initial_resolve: float = Field(gt=0)
    sprite: str = ""
    unlock_level: int = Field(ge=1)


STUBBORN_SOULS: tuple[StubbornSoul, ...] = (
    StubbornSoul(
        id=0,
        name="The Restless Athlete",
        backstory=(
            "A runner who never crossed the finish line they dreamed of. "
            "They cling to the track, running endless laps."
        ),
        initial_resolve=100,
        sprite="athlete.png",
        unlock_level=1,
    ),
    StubbornSoul(
        id=1,
        name="The Unfinished Scholar",
        backstory=(
            "A researcher who died before publishing their life's work. "
            "They haunt the library, searching for one more source."
        ),
        initial_resolve=200,
        sprite="scholar.png",
        unlock_level=3,
    ),
    StubbornSoul(
        id=2,
        name="The Regretful Parent",
        backstory=(
            "A parent who missed their child's milestones. "
            "They linger at the playground, watching families."
        ),
        initial_resolve=350,
        sprite="parent.png",
        unlock_level=5,
    ),
    StubbornSoul(
        id=3,
        name="The Forgotten Artist",
        backstory=(
            "A painter whose masterpiece was never seen. "
            "They wander galleries, invisible among the crowds."
        ),
        initial_resolve=500,
        sprite="artist.png",
        unlock_level=7,
    ),
    StubbornSoul(
        id=4,
        name="The Lonely Musician",
        backstory=(
            "A composer whose symphony was never performed. "
            "They sit at a silent piano, fingers hovering over keys."
        ),
        initial_resolve=700,
        sprite="musician.png",
        unlock_level=10,
    ),
    StubbornSoul(
        id=5,
        name="The Devoted Gardener",
        backstory=(
            "A botanist who never saw their rare seed bloom. "
            "They tend to a garden that exists only in memory."
        ),
        initial_resolve=950,
        sprite="gardener.png",
        unlock_level=13,
    ),
    StubbornSoul(
        id=6,
        name="The Ambitious Inventor",
        backstory=(
            "An engineer whose greatest invention stayed a blueprint. "
            "They tinker in an empty workshop, chasing one last adjustment."
        ),
        initial_resolve=1250,
        sprite="inventor.png",
        unlock_level=16,
    ),
    StubbornSoul(
        id=7,
        name="The Wandering Explorer",
        backstory=(
            "A traveler who never found the place on their oldest map. "
            "They walk the borders of the world, unwilling to stop."
        ),
        initial_resolve=1600,
        sprite="explorer.png",
        unlock_level=20,
    ),
    StubbornSoul(
        id=8,
        name="The Silent Poet",
        backstory=(
            "A writer who never shared a single verse. "
            "They sit among unsent letters, searching for the perfect word."
        ),
        initial_resolve=2000,
        sprite="poet.png",
        unlock_level=24,
    ),
    StubbornSoul(
        id=9,
        name="The Eternal Guardian",
        backstory=(
            "A protector who fell at the one moment it mattered most. "
            "They stand watch over a gate no one passes anymore."
        ),
        initial_resolve=2500,
        sprite="guardian.png",
        unlock_level=28,
    ),
)


def get_boss(index: int) -> StubbornSoul:
    """Look up a boss by catalog position. Raises CatalogIndexError if out of range."""
    if not 0 <= index < len(STUBBORN_SOULS):
        raise CatalogIndexError(index, len(STUBBORN_SOULS))
    return STUBBORN_SOULS[index]


def is_final_boss(index: int) -> bool:
    return index == len(STUBBORN_SOULS) - 1


def is_boss_unlocked(index: int, player_level: int) -> bool:
    """
    Whether the boss at `index` is shown as unlocked for a player level.

    Visibility only. Progression always advances to the next boss on defeat.
    """
    return player_level >= get_boss(index).unlock_level
