from __future__ import annotations

from typing import List

from ..models import Action
from .dice import FormulaRoller, join_parts
from .types import AttackDescriptor, DamageRoll, StepContext, StepRoll


class AttackResolver:
    """Roll one planned attack against its step context.

    Nothing here touches resources or sequence state; a failure raised from
    the roller leaves the step exactly as it was.
    """

    def __init__(self, action: Action, roller: FormulaRoller) -> None:
        self.action = action
        self.roller = roller

    def attack_formula(self, atk: AttackDescriptor, ctx: StepContext) -> str:
        return join_parts(
            ["1d20", self.action.attack, *ctx.attack_parts, atk.attack_bonus, *ctx.conditional_attack_parts]
        )

    def bonus_formula(self, atk: AttackDescriptor) -> str:
        """Static attack formula without the d20 or per-step parts, used for previews."""
        return join_parts([self.action.attack, atk.attack_bonus])

    def roll(self, atk: AttackDescriptor, ctx: StepContext) -> StepRoll:
        data = ctx.roll_data
        attack = confirm = None
        if atk.has_attack_roll and self.action.has_attack:
            formula = self.attack_formula(atk, ctx)
            attack = self.roller.evaluate(formula, data)
            natural = attack.d20
            if natural is not None and natural >= self.action.crit_range:
                confirm = self.roller.evaluate(formula, data)

        flavor = atk.label if not atk.has_attack_roll else None
        damage: List[DamageRoll] = []
        for i, part in enumerate(self.action.damage):
            extra = [*ctx.damage_parts, *ctx.conditional_damage_parts] if i == 0 else []
            damage.append(
                DamageRoll(
                    roll=self.roller.evaluate(join_parts([part.formula, *extra]), data),
                    damage_type=part.type,
                    flavor=flavor,
                )
            )
        if confirm is not None:
            for i, part in enumerate(self.action.damage):
                base = [part.formula] * self.action.crit_multiplier
                extra = [*ctx.crit_damage_parts, *ctx.conditional_damage_parts] if i == 0 else []
                damage.append(
                    DamageRoll(
                        roll=self.roller.evaluate(join_parts([*base, *extra]), data),
                        damage_type=part.type,
                        critical=True,
                    )
                )

        misfire = bool(
            atk.requires_ammo
            and self.action.misfire
            and attack is not None
            and attack.d20 is not None
            and attack.d20 <= self.action.misfire
        )

        save_dc = save_type = None
        if self.action.save is not None:
            save_type = self.action.save.type
            save_dc = self.roller.evaluate(self.action.save.dc, data).total

        return StepRoll(
            attack=attack,
            crit_confirm=confirm,
            damage=tuple(damage),
            misfire=misfire,
            save_dc=save_dc,
            save_type=save_type,
        )


__all__ = ["AttackResolver"]
