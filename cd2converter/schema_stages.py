#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Schema Stages - Étapes de traduction d'un arbre CD1 vers un arbre CD2

Chaque étape reçoit le document CD1 d'origine (jamais modifié), l'arbre CD2
accumulé et le contexte (tables + canal de diagnostics), et retourne un
nouvel arbre CD2. `translate_document` les enchaîne dans l'ordre de STAGES.
"""

from __future__ import annotations

import copy
import math
import logging
from functools import reduce
from typing import Dict, List, Any, Optional, Callable
from dataclasses import dataclass

from cd2_converter_core import ConversionError, IDiagnosticSink
from mapping_tables_manager import MappingTables, FieldStatusKind

logger = logging.getLogger(__name__)

DEFAULT_RESUPPLY_COST = 80.0
BASE_HAZARD = "Hazard 5"
RESUPPLY_MUTATOR = "ByResuppliesCalled"


@dataclass(frozen=True)
class TranslationContext:
    """Tables de correspondance et canal de diagnostics partagés par les étapes"""
    tables: MappingTables
    sink: IDiagnosticSink


Stage = Callable[[Dict[str, Any], Dict[str, Any], TranslationContext], Dict[str, Any]]


def _as_number(value: Any, field_name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConversionError(f"Valeur numérique attendue pour [{field_name}]: {value!r}")
    return float(value)


def _module(tree: Dict[str, Any], name: str) -> Dict[str, Any]:
    """Retourne le sous-objet `name`, créé s'il n'existe pas encore"""
    if not isinstance(tree.get(name), dict):
        tree[name] = {}
    return tree[name]

# ============================================================================
# PASSTHROUGH
# ============================================================================

def copy_field_stage(field_name: str, advice: Optional[str] = None) -> Stage:
    """Étape qui recopie un champ tel quel; `advice` est signalé s'il manque"""

    def stage(original: Dict[str, Any], output: Dict[str, Any],
              context: TranslationContext) -> Dict[str, Any]:
        if field_name not in original:
            if advice:
                context.sink.emit("missing_field", f"Le champ [{field_name}] est absent. [{advice}]",
                                  subject=field_name)
            return output
        new = copy.deepcopy(output)
        new[field_name] = copy.deepcopy(original[field_name])
        return new

    stage.__name__ = f"copy_{field_name}"
    return stage

# ============================================================================
# RESUPPLY
# ============================================================================

def compute_supply_vector(starting_nitra: float, cost: float) -> List[float]:
    """Coût de chaque appel de ravitaillement, le dernier élément se répétant ensuite.

    La nitra de départ est convertie en ravitaillements gratuits puis en remise
    sur l'appel suivant: 80 de coût et 200 de nitra donnent [0, 0, 40, 80].
    """
    if starting_nitra <= cost:
        return [cost - starting_nitra, cost]
    if cost <= 0:
        raise ConversionError(f"ResupplyCost doit être positif avec StartingNitra: {cost}")
    free_calls = math.floor(starting_nitra / cost)
    return [0.0] * free_calls + [cost - math.fmod(starting_nitra, cost), cost]


def effective_resupply_cost(original: Dict[str, Any]) -> float:
    cost = original.get("ResupplyCost")
    if cost is None:
        return DEFAULT_RESUPPLY_COST
    return _as_number(cost, "ResupplyCost")


def build_resupply_module(original: Dict[str, Any], output: Dict[str, Any],
                          context: TranslationContext) -> Dict[str, Any]:
    # Coût seul si StartingNitra est absent ou nul, sinon mutateur de ravitaillement
    new = copy.deepcopy(output)
    cost = effective_resupply_cost(original)
    starting_nitra = original.get("StartingNitra")

    if starting_nitra is None or _as_number(starting_nitra, "StartingNitra") == 0:
        _module(new, "Resupply")["Cost"] = cost
    else:
        _module(new, "Resupply")["Cost"] = {
            "Mutate": RESUPPLY_MUTATOR,
            "Values": compute_supply_vector(float(starting_nitra), cost)
        }
    return new

# ============================================================================
# TOP MODULES
# ============================================================================

def update_if_range_array(value: Any) -> Any:
    """CD2 supprime le niveau "range" des tableaux pondérés.

    Seul le premier élément sert à détecter la forme du tableau.
    """
    if not (isinstance(value, list) and value
            and isinstance(value[0], dict) and value[0].get("weight") is not None):
        return copy.deepcopy(value)

    flattened = []
    for entry in value:
        entry = entry if isinstance(entry, dict) else {}
        bounds = entry.get("range") if isinstance(entry.get("range"), dict) else {}
        flattened.append({
            "weight": copy.deepcopy(entry.get("weight")),
            "min": copy.deepcopy(bounds.get("min")),
            "max": copy.deepcopy(bounds.get("max"))
        })
    return flattened


def build_top_modules(original: Dict[str, Any], output: Dict[str, Any],
                      context: TranslationContext) -> Dict[str, Any]:
    new = copy.deepcopy(output)
    for key, value in original.items():
        status = context.tables.field_status(key)
        if status is None:
            context.sink.emit("unsupported_field",
                              f"Champ non supporté: [{key}]. Merci d'ouvrir une issue.",
                              subject=key)
        elif status.kind is FieldStatusKind.DEPRECATED:
            context.sink.emit("deprecated_field", f"Champ obsolète: [{key}]. Ignoré.",
                              level=logging.INFO, subject=key)
        elif status.kind is FieldStatusKind.VALID:
            _module(new, status.module)[key] = update_if_range_array(value)

    # BaseHazard explicite, Hazard 5 par défaut
    _module(new, "DifficultySetting")["BaseHazard"] = BASE_HAZARD

    # StationaryEnemies s'appelle StationaryPool dans CD2
    pools = new.get("Pools")
    if isinstance(pools, dict) and "StationaryEnemies" in pools:
        pools["StationaryPool"] = pools.pop("StationaryEnemies")
    return new

# ============================================================================
# ENEMIES
# ============================================================================

def translate_pawn_stats(controls: Dict[str, Any], pawn_stats: Dict[str, Any],
                         enemy: str, context: TranslationContext) -> None:
    """Déplace les pawn stats CD1 vers leurs champs CD2 (modifie `controls`)"""
    for stat, value in pawn_stats.items():
        rule = context.tables.pawn_stat(stat)
        if rule is None:
            context.sink.emit("unsupported_pawn_stat",
                              f"Pawn stat non supportée: [{stat}] sur l'ennemi [{enemy}]. "
                              f"Merci d'ouvrir une issue. Ignorée.",
                              subject=enemy)
            continue

        new_value = 1.0 - _as_number(value, stat) if rule.invertible else copy.deepcopy(value)
        if rule.is_direct:
            controls[rule.target_field] = new_value
        else:
            _module(controls, rule.target_module)[rule.target_field] = new_value


def build_enemies_module(original: Dict[str, Any], output: Dict[str, Any],
                         context: TranslationContext) -> Dict[str, Any]:
    descriptors = original.get("EnemyDescriptors")
    if descriptors is None:
        return output

    new = copy.deepcopy(output)
    new["EnemiesNoSync"] = copy.deepcopy(descriptors)
    if not isinstance(descriptors, dict):
        return new

    tables = context.tables
    for enemy, controls in new["EnemiesNoSync"].items():
        if not isinstance(controls, dict):
            context.sink.emit("invalid_enemy_descriptor",
                              f"Descripteur d'ennemi invalide: [{enemy}]. Recopié tel quel.",
                              subject=enemy)
            continue

        pawn_stats = controls.pop("PawnStats", None)
        if isinstance(pawn_stats, dict):
            translate_pawn_stats(controls, pawn_stats, enemy, context)
        elif pawn_stats is not None:
            context.sink.emit("unsupported_pawn_stat",
                              f"PawnStats invalide dans [{enemy}]: un objet est attendu. Ignoré.",
                              subject=enemy)

        # Contrôles obsolètes ou mal orthographiés
        for control in descriptors[enemy]:
            if control != "PawnStats" and not tables.is_valid_enemy_control(control):
                context.sink.emit("invalid_enemy_control",
                                  f"Contrôle d'ennemi obsolète ou mal orthographié: [{control}] "
                                  f"dans [{enemy}]. Ignoré.",
                                  level=logging.INFO, subject=enemy)
                controls.pop(control, None)

        # Élite dérivé d'une base non vanilla
        if (controls.get("Elite") is True
                and not tables.is_vanilla_elite(controls.get("Base"))
                and tables.is_vanilla_elite(enemy)):
            context.sink.emit("non_vanilla_elite",
                              f"Ennemi élite non vanilla détecté avec la base: [{controls.get('Base')}]",
                              level=logging.INFO, subject=enemy)
            controls["ForceEliteBase"] = enemy
    return new

# ============================================================================
# PIPELINE
# ============================================================================

STAGES: List[Stage] = [
    copy_field_stage("Name", "Il est recommandé d'ajouter un Name."),
    copy_field_stage("Description", "Il est recommandé d'ajouter une Description."),
    build_resupply_module,
    build_top_modules,
    build_enemies_module,
    copy_field_stage("EscortMule"),
]


def translate_document(original: Dict[str, Any], tables: MappingTables,
                       sink: IDiagnosticSink, stages: Optional[List[Stage]] = None) -> Dict[str, Any]:
    """Traduit un document CD1 déjà parsé en document CD2"""
    context = TranslationContext(tables=tables, sink=sink)
    pipeline = STAGES if stages is None else stages

    def apply(output: Dict[str, Any], stage: Stage) -> Dict[str, Any]:
        logger.debug(f"Étape de traduction: {stage.__name__}")
        return stage(original, output, context)

    return reduce(apply, pipeline, {})
