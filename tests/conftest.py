"""
Shared fixtures: small synthetic league tables and a scripted clusterer.
"""

import pytest

from normalize_team_profiles import normalize

LEAGUES = ["England Premier League", "Spain LIGA BBVA"]
TEAMS_PER_LEAGUE = 12


def league_row(league_idx, t):
    league = LEAGUES[league_idx]
    return {
        "league_name": league,
        "team_name": f"{league.split()[0]} Team {t:02d}",
        "team_api_id": str(1000 + 100 * league_idx + t),
        "buildUpPlaySpeed": str(30 + 3 * t + league_idx),
        "buildUpPlayDribbling": str(40 + (t * 7) % 20),
        "buildUpPlayPassing": str(70 - 2 * t),
        "buildUpPlayPositioningClass": "Free Form" if t % 3 == 0 else "Organised",
        "chanceCreationPassing": str(50 + t),
        "chanceCreationCrossing": str(45 + (t * 5) % 17),
        "chanceCreationShooting": str(60 - t + 2 * league_idx),
        "chanceCreationPositioningClass": "Organised",
        "defencePressure": str(35 + t),
        "defenceAggression": str(50 + (t * 3) % 11),
        "defenceTeamWidth": str(48 + t % 5),
        "defenceDefenderLineClass": "Cover" if t % 2 else "Offside Trap",
    }


@pytest.fixture
def league_raw_rows():
    return [league_row(li, t) for li in range(len(LEAGUES)) for t in range(TEAMS_PER_LEAGUE)]


@pytest.fixture
def league_records(league_raw_rows):
    return normalize(league_raw_rows).records


@pytest.fixture
def two_teams():
    """E1 = (2, 4), E2 = (4, 2) on speed / passing."""
    rows = [
        {"league_name": "groupA", "team_name": "E1", "buildUpPlaySpeed": 2, "buildUpPlayPassing": 4},
        {"league_name": "groupA", "team_name": "E2", "buildUpPlaySpeed": 4, "buildUpPlayPassing": 2},
    ]
    return normalize(rows).records


class ScriptedClusterer:
    """
    Clustering collaborator with a predictable answer: row i gets label
    (i % k) + 1, returned in reverse order. With deferred=True it answers
    None and the test delivers the result later.
    """

    def __init__(self, deferred=False):
        self.deferred = deferred
        self.calls = []

    def __call__(self, rows, variables, k):
        self.calls.append((list(rows), list(variables), k))
        if self.deferred:
            return None
        return self.answer(rows, k)

    @staticmethod
    def answer(rows, k):
        labeled = [
            {"league_name": r.league, "team_name": r.team, "cluster": (i % k) + 1}
            for i, r in enumerate(rows)
        ]
        return list(reversed(labeled))


@pytest.fixture
def clusterer():
    return ScriptedClusterer()


@pytest.fixture
def deferred_clusterer():
    return ScriptedClusterer(deferred=True)
