"""Competitions available on the football-data.org free tier."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Competition:
    """Competition configuration."""

    code: str
    name: str
    country: str


FREE_TIER_COMPETITIONS = [
    Competition(code="PL", name="Premier League", country="England"),
    Competition(code="BL1", name="Bundesliga", country="Germany"),
    Competition(code="SA", name="Serie A", country="Italy"),
    Competition(code="PD", name="La Liga", country="Spain"),
    Competition(code="FL1", name="Ligue 1", country="France"),
    Competition(code="DED", name="Eredivisie", country="Netherlands"),
    Competition(code="PPL", name="Primeira Liga", country="Portugal"),
    Competition(code="ELC", name="Championship", country="England"),
    Competition(code="CL", name="Champions League", country="Europe"),
    Competition(code="EC", name="European Championship", country="Europe"),
    Competition(code="WC", name="World Cup", country="International"),
]

COMPETITIONS = {c.code: c for c in FREE_TIER_COMPETITIONS}
