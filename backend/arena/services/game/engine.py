import random
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from flask import current_app

from arena.errors import ValidationError
from arena.store import DEFAULT_HP, MAX_HP

MIN_DAMAGE = 10
MAX_DAMAGE = 30
RETALIATION_CHANCE = 0.5
RETALIATION_WEAPON = 'Retaliation Strike'
# Conditional HP writes retried before falling back to a plain overwrite
CAS_ATTEMPTS = 5


def clamped_damage_apply(hp: int, damage: int) -> int:
    return max(0, min(MAX_HP, hp - damage))


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


@dataclass
class Combatant:
    id: int
    display_name: str
    hp: int = DEFAULT_HP

    def to_dict(self):
        return {
            'id': self.id,
            'display_name': self.display_name,
            'hp': self.hp,
        }


@dataclass(frozen=True)
class AttackLogEntry:
    attacker: str
    weapon: str
    damage: int
    timestamp: str

    def to_dict(self):
        return {
            'attacker': self.attacker,
            'weapon': self.weapon,
            'damage': self.damage,
            'timestamp': self.timestamp,
        }


@dataclass
class Strike:
    """One applied hit: damage dealt and the victim's HP afterwards."""
    attacker_id: int
    target_id: int
    damage: int
    target_hp: int
    entry: AttackLogEntry
    announcement: str

    @property
    def defeated(self) -> bool:
        return self.target_hp == 0

    def to_dict(self):
        return {
            'attacker_id': self.attacker_id,
            'target_id': self.target_id,
            'damage': self.damage,
            'target_hp': self.target_hp,
            'defeated': self.defeated,
            'entry': self.entry.to_dict(),
            'announcement': self.announcement,
        }


@dataclass
class AttackOutcome:
    strike: Strike
    retaliation: Optional[Strike] = None
    announcements: List[str] = field(default_factory=list)

    @property
    def defeated(self) -> bool:
        return self.strike.defeated

    def to_dict(self):
        return {
            'strike': self.strike.to_dict(),
            'retaliation': self.retaliation.to_dict() if self.retaliation else None,
            'defeated': self.defeated,
            'announcements': list(self.announcements),
        }


class AttackEngine:
    """Resolves one attack and its possible retaliation against the store.

    Publishing the announcements is left to the caller, after this returns.
    """

    def __init__(self, store, rng: Optional[random.Random] = None, clock=utc_timestamp):
        self.store = store
        self.rng = rng or random.Random()
        self.clock = clock

    def roll_damage(self) -> int:
        return self.rng.randint(MIN_DAMAGE, MAX_DAMAGE)

    def resolve_attack(self, attacker: Combatant, target: Combatant, weapon: str) -> AttackOutcome:
        if not isinstance(weapon, str) or not weapon.strip():
            raise ValidationError('weapon is required')
        weapon = weapon.strip()

        strike = self._apply_strike(attacker, target, weapon, self.roll_damage())
        strike.announcement = (
            f"{attacker.display_name} attacked {target.display_name} with {weapon} "
            f"for {strike.damage} damage!"
        )
        if strike.defeated:
            strike.announcement += f" {target.display_name} has been defeated!"
        current_app.logger.info(
            f"[attack] {attacker.id} -> {target.id} weapon={weapon} "
            f"damage={strike.damage} hp={strike.target_hp}"
        )
        outcome = AttackOutcome(strike=strike, announcements=[strike.announcement])

        if self.rng.random() < RETALIATION_CHANCE and self.store.get_hp(attacker.id) > 0:
            counter = self._apply_strike(target, attacker, RETALIATION_WEAPON, self.roll_damage())
            counter.announcement = (
                f"{target.display_name} retaliated against {attacker.display_name} "
                f"with a {RETALIATION_WEAPON} for {counter.damage} damage!"
            )
            current_app.logger.info(
                f"[retaliation] {target.id} -> {attacker.id} "
                f"damage={counter.damage} hp={counter.target_hp}"
            )
            outcome.retaliation = counter
            outcome.announcements.append(counter.announcement)
        return outcome

    def _apply_strike(self, attacker: Combatant, target: Combatant, weapon: str, damage: int) -> Strike:
        for _ in range(CAS_ATTEMPTS):
            current = self.store.get_hp(target.id)
            new_hp = clamped_damage_apply(current, damage)
            if self.store.compare_and_set_hp(target.id, current, new_hp):
                break
        else:
            current_app.logger.warning(f"[attack] contended HP write for {target.id}; overwriting")
            self.store.set_hp(target.id, new_hp)
        target.hp = new_hp

        entry = AttackLogEntry(
            attacker=attacker.display_name,
            weapon=weapon,
            damage=damage,
            timestamp=self.clock(),
        )
        self.store.append_attack(target.id, entry.to_dict())
        return Strike(
            attacker_id=attacker.id,
            target_id=target.id,
            damage=damage,
            target_hp=new_hp,
            entry=entry,
            announcement='',
        )
