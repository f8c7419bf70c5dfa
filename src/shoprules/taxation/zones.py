"""Geographic zones used as tax jurisdictions and shipping destinations."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Union


@dataclass(eq=False)
class Country:
    id: int
    iso: str
    name: str = ""
    states: List["State"] = field(default_factory=list)

    def add_state(self, state: "State") -> "State":
        state.country = self
        self.states.append(state)
        return state


@dataclass(eq=False)
class State:
    id: int
    abbr: str
    name: str = ""
    country: Optional[Country] = None


@dataclass(eq=False)
class Address:
    country: Country
    state: Optional[State] = None


ZoneMember = Union[Country, State]


@dataclass(eq=False)
class Zone:
    """A named group of countries or of states.

    A zone whose members are all states is a state zone; anything else is
    treated as a country zone.
    """

    id: int
    name: str
    members: List[ZoneMember] = field(default_factory=list)
    default_tax: bool = False
    description: str = ""

    @property
    def kind(self) -> str:
        if self.members and all(isinstance(m, State) for m in self.members):
            return "state"
        return "country"

    @property
    def country_ids(self) -> set:
        return {m.id for m in self.members if isinstance(m, Country)}

    @property
    def state_ids(self) -> set:
        return {m.id for m in self.members if isinstance(m, State)}

    def contains(self, target: Optional["Zone"]) -> bool:
        """Return True when every member of ``target`` falls inside this zone.

        A country zone contains a state zone when all of the target's states
        belong to one of its countries. A state zone never contains a
        country zone.
        """
        if target is None:
            return False
        if self.kind == "state" and target.kind == "country":
            return False
        if not self.members or not target.members:
            return False

        if self.kind == target.kind:
            own_ids = self.state_ids if self.kind == "state" else self.country_ids
            target_ids = target.state_ids if target.kind == "state" else target.country_ids
            return target_ids <= own_ids

        target_country_ids = set()
        for member in target.members:
            if member.country is None:
                return False
            target_country_ids.add(member.country.id)
        return target_country_ids <= self.country_ids

    def include(self, address: Optional[Address]) -> bool:
        if address is None:
            return False
        for member in self.members:
            if isinstance(member, Country) and member.id == address.country.id:
                return True
            if isinstance(member, State) and address.state is not None and member.id == address.state.id:
                return True
        return False

    def __repr__(self) -> str:
        return f"Zone(id={self.id!r}, name={self.name!r}, default_tax={self.default_tax!r})"


def default_tax_zone(zones: Iterable[Zone]) -> Optional[Zone]:
    """Return the zone flagged as the merchant's home tax zone, if any."""
    for zone in zones:
        if zone.default_tax:
            return zone
    return None


def match_zone(zones: Iterable[Zone], address: Optional[Address]) -> Optional[Zone]:
    """Return the most specific zone including ``address``.

    State zones win over country zones; among zones of the same kind the
    one with fewer members wins.
    """
    if address is None:
        return None
    matches = [zone for zone in zones if zone.include(address)]
    if not matches:
        return None
    matches.sort(key=lambda z: (0 if z.kind == "state" else 1, len(z.members), z.id))
    return matches[0]
