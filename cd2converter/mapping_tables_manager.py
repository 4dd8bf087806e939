#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Mapping Tables Manager - Tables de correspondance CD1 -> CD2
Chargées une seule fois par exécution, en lecture seule ensuite
"""

from __future__ import annotations

import json
import logging
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Any, Optional, Mapping, FrozenSet
from dataclasses import dataclass

from cd2_converter_core import ConversionError

logger = logging.getLogger(__name__)

# Sections attendues dans le fichier de tables
TOP_MODULES_KEY = "TOP_MODULES"
PAWN_STATS_KEY = "PAWN_STATS"
ELITE_ENEMIES_KEY = "VANILLA_ELITE_ENEMIES"
ENEMY_CONTROLS_KEY = "VALID_ENEMY_CONTROLS"

# Règle d'inversion des pawn stats (liste fixe, pas pilotée par les données)
RESISTANCE_MODULE = "Resistances"
DIRECT_MODULE = "None"
NON_INVERTIBLE_STATS = frozenset({"PST_DamageResistance"})


class FieldStatusKind(Enum):
    DEPRECATED = "deprecated"
    IGNORED = "ignore"
    VALID = "valid"


@dataclass(frozen=True)
class FieldStatus:
    """Statut d'un champ de premier niveau CD1"""
    kind: FieldStatusKind
    module: Optional[str] = None

    @classmethod
    def parse(cls, raw: str) -> 'FieldStatus':
        """Interprète le statut brut: "deprecated", "ignore" ou un nom de module"""
        if raw == FieldStatusKind.DEPRECATED.value:
            return cls(FieldStatusKind.DEPRECATED)
        if raw == FieldStatusKind.IGNORED.value:
            return cls(FieldStatusKind.IGNORED)
        return cls(FieldStatusKind.VALID, module=raw)


@dataclass(frozen=True)
class PawnStatRule:
    """Destination CD2 d'une pawn stat CD1"""
    target_module: str
    target_field: str
    invertible: bool = False

    @classmethod
    def from_entry(cls, stat: str, entry: Dict[str, Any]) -> 'PawnStatRule':
        try:
            module = entry["CD2_module"]
            field = entry["CD2_field"]
        except (KeyError, TypeError):
            raise ConversionError(f"Pawn stat mal définie dans les tables: [{stat}]")
        return cls(
            target_module=module,
            target_field=field,
            invertible=module == RESISTANCE_MODULE and stat not in NON_INVERTIBLE_STATS
        )

    @property
    def is_direct(self) -> bool:
        """La valeur est écrite directement sur l'ennemi"""
        return self.target_module == DIRECT_MODULE


@dataclass(frozen=True)
class MappingTables:
    """Ensemble des tables de traduction, immuable après chargement"""
    top_modules: Mapping[str, FieldStatus]
    pawn_stats: Mapping[str, PawnStatRule]
    vanilla_elite_enemies: FrozenSet[str]
    valid_enemy_controls: FrozenSet[str]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MappingTables':
        """Construit les tables depuis le contenu JSON déjà parsé"""
        missing = [key for key in (TOP_MODULES_KEY, PAWN_STATS_KEY, ELITE_ENEMIES_KEY, ENEMY_CONTROLS_KEY)
                   if key not in data]
        if missing:
            raise ConversionError(f"Sections manquantes dans les tables: {', '.join(missing)}")

        top_modules: Dict[str, FieldStatus] = {}
        for key, raw_status in data[TOP_MODULES_KEY].items():
            if not isinstance(raw_status, str):
                raise ConversionError(f"Statut invalide pour le champ [{key}]: {raw_status!r}")
            top_modules[key] = FieldStatus.parse(raw_status)

        pawn_stats = {
            stat: PawnStatRule.from_entry(stat, entry)
            for stat, entry in data[PAWN_STATS_KEY].items()
        }

        return cls(
            top_modules=MappingProxyType(top_modules),
            pawn_stats=MappingProxyType(pawn_stats),
            vanilla_elite_enemies=frozenset(data[ELITE_ENEMIES_KEY]),
            valid_enemy_controls=frozenset(data[ENEMY_CONTROLS_KEY])
        )

    @classmethod
    def from_json_path(cls, path: Path) -> 'MappingTables':
        """Charge les tables depuis un fichier JSON"""
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except OSError as e:
            raise ConversionError(f"Impossible de lire les tables {path}: {e}") from e
        except json.JSONDecodeError as e:
            raise ConversionError(f"Tables JSON invalides {path}: {e}") from e

        tables = cls.from_dict(data)
        logger.info(f"Tables chargées depuis {path}: {len(tables.top_modules)} champs, "
                    f"{len(tables.pawn_stats)} pawn stats")
        return tables

    def field_status(self, key: str) -> Optional[FieldStatus]:
        return self.top_modules.get(key)

    def pawn_stat(self, stat: str) -> Optional[PawnStatRule]:
        return self.pawn_stats.get(stat)

    def is_vanilla_elite(self, enemy: Any) -> bool:
        return isinstance(enemy, str) and enemy in self.vanilla_elite_enemies

    def is_valid_enemy_control(self, control: str) -> bool:
        return control in self.valid_enemy_controls
