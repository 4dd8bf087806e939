#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
CD2 Converter - Core Engine
Briques de base de la conversion des fichiers Custom Difficulty CD1 vers CD2:
configuration, diagnostics, descriptions multilignes et lecture/écriture.
"""

from __future__ import annotations

import os
import re
import json
import logging
import tempfile
from pathlib import Path
from typing import Dict, List, Tuple, Optional, Any
from dataclasses import dataclass, field
from abc import ABC, abstractmethod
from collections import Counter

import chardet

logger = logging.getLogger(__name__)

CONFIG_DIR = Path(__file__).resolve().parent / "config"
DEFAULT_MODULES_FILE = CONFIG_DIR / "cd2-modules.json"
DEFAULT_CONFIG_FILE = CONFIG_DIR / "converter_config.json"

# Jetons utilisés par le scan texte de la description
DESCRIPTION_FIELD = "Description"
DESCRIPTION_TOKEN = f'"{DESCRIPTION_FIELD}"'
CLOSING_TOKEN = '",'

# ============================================================================
# CONFIGURATION AND DATA CLASSES
# ============================================================================

class ConversionError(Exception):
    """Erreur fatale: la conversion ne peut pas continuer"""


@dataclass
class ConversionConfig:
    """Configuration de la conversion"""
    pretty_print: bool = True
    indent: int = 4
    target_marker: str = "cd2"
    modules_file: Path = DEFAULT_MODULES_FILE
    encoding_detection: bool = True


@dataclass
class Diagnostic:
    """Anomalie non fatale relevée pendant la traduction"""
    code: str
    message: str
    level: int = logging.WARNING
    subject: Optional[str] = None


@dataclass
class ConversionResult:
    """Résultat d'une conversion de fichier"""
    success: bool
    message: str
    output_file: Optional[Path] = None
    output_text: Optional[str] = None
    diagnostics: List[Diagnostic] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

# ============================================================================
# ABSTRACT INTERFACES
# ============================================================================

class IDiagnosticSink(ABC):
    """Canal de rapport des anomalies non fatales"""

    @abstractmethod
    def report(self, diagnostic: Diagnostic) -> None:
        """Enregistre un diagnostic"""
        pass

    def emit(self, code: str, message: str, level: int = logging.WARNING,
             subject: Optional[str] = None) -> None:
        self.report(Diagnostic(code=code, message=message, level=level, subject=subject))

# ============================================================================
# DIAGNOSTIC SINKS
# ============================================================================

class LoggingDiagnosticSink(IDiagnosticSink):
    """Transmet les diagnostics au système de logging"""

    def __init__(self, target_logger: Optional[logging.Logger] = None):
        self._logger = target_logger or logger

    def report(self, diagnostic: Diagnostic) -> None:
        self._logger.log(diagnostic.level, diagnostic.message)


class CollectingDiagnosticSink(IDiagnosticSink):
    """Conserve les diagnostics d'une exécution, avec relais optionnel"""

    def __init__(self, forward_to: Optional[IDiagnosticSink] = None):
        self.diagnostics: List[Diagnostic] = []
        self._forward_to = forward_to

    def report(self, diagnostic: Diagnostic) -> None:
        self.diagnostics.append(diagnostic)
        if self._forward_to is not None:
            self._forward_to.report(diagnostic)

    def codes(self) -> List[str]:
        return [d.code for d in self.diagnostics]

    def count_by_code(self) -> Dict[str, int]:
        return dict(Counter(self.codes()))

# ============================================================================
# MULTILINE DESCRIPTIONS
# ============================================================================

_ESCAPED_BACKSLASH = re.compile(r"\\\\")
_UNESCAPED_QUOTE = re.compile(r'(?<!\\)"')


def _split_lines(text: str) -> List[str]:
    lines = text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]


def _is_single_line(line: str) -> bool:
    """Vérifie si la ligne d'ouverture contient déjà une chaîne complète"""
    stripped = line.rstrip()
    if stripped.endswith(CLOSING_TOKEN):
        return True
    quotes = _UNESCAPED_QUOTE.findall(_ESCAPED_BACKSLASH.sub("", stripped))
    return len(quotes) % 2 == 0


def extract_multilines(text: str) -> Tuple[str, Optional[str]]:
    """Retire la description multiligne du texte source.

    Retourne le texte d'origine et None si la description tient sur une ligne
    (ou est absente). Sinon la ligne d'ouverture est refermée avec `",` pour
    que le parseur JSON l'accepte, et les lignes suivantes, jusqu'à la
    prochaine clé entre guillemets, sont renvoyées jointes par des retours
    à la ligne.
    """
    lines = _split_lines(text)
    start: Optional[int] = None
    end: Optional[int] = None

    for index, line in enumerate(lines):
        stripped = line.strip()
        if start is None:
            if stripped.startswith(DESCRIPTION_TOKEN):
                if _is_single_line(line):
                    break
                start = index + 1
        elif stripped.startswith('"') and stripped != CLOSING_TOKEN:
            end = index
            break

    if start is None:
        return text, None
    if end is None:
        raise ConversionError("Description multiligne non terminée: aucune clé ne suit la description")

    logger.info("Description multiligne détectée. Sauvegarde.")
    sanitized = lines[:start - 1] + [lines[start - 1] + CLOSING_TOKEN] + lines[end:]
    return "\n".join(sanitized), "\n".join(lines[start:end])


def recover_multilines(rendered: str, multilines: str) -> str:
    """Réinsère les lignes sauvegardées après la ligne de description"""
    logger.info("Récupération de la description multiligne.")
    recovered: List[str] = []
    inserted = False

    for line in rendered.split("\n"):
        if not inserted and line.strip().startswith(DESCRIPTION_TOKEN):
            line = line.rstrip()
            if line.endswith(CLOSING_TOKEN):
                line = line[:-len(CLOSING_TOKEN)]
            recovered.append(line)
            recovered.append(multilines)
            inserted = True
        else:
            recovered.append(line)

    if not inserted:
        logger.warning("Ligne de description introuvable, la description multiligne est perdue")
    return "\n".join(recovered)


def fold_multilines(document: Dict[str, Any], multilines: str) -> Dict[str, Any]:
    """Intègre les lignes sauvegardées dans la valeur de la description (sortie compacte)"""
    body = multilines.rstrip()
    if body.endswith(CLOSING_TOKEN):
        body = body[:-len(CLOSING_TOKEN)]
    elif body.endswith('"'):
        body = body[:-1]

    try:
        continuation = json.loads(f'"{body}"', strict=False)
    except json.JSONDecodeError as e:
        raise ConversionError(f"Description multiligne illisible: {e}") from e

    folded = dict(document)
    folded[DESCRIPTION_FIELD] = f"{document.get(DESCRIPTION_FIELD, '')}\n{continuation}"
    return folded

# ============================================================================
# SERIALIZATION
# ============================================================================

def render_document(document: Dict[str, Any], pretty: bool = True, indent: int = 4) -> str:
    if pretty:
        return json.dumps(document, indent=indent, ensure_ascii=False)
    return json.dumps(document, ensure_ascii=False, separators=(",", ":"))


def serialize_document(document: Dict[str, Any], multilines: Optional[str] = None,
                       pretty: bool = True, indent: int = 4) -> str:
    """Produit le texte final, description multiligne comprise"""
    if multilines is None:
        return render_document(document, pretty, indent)
    if pretty:
        return recover_multilines(render_document(document, True, indent), multilines)
    return render_document(fold_multilines(document, multilines), pretty=False)

# ============================================================================
# FILE HANDLING
# ============================================================================

def read_source_text(path: Path, detect_encoding: bool = True) -> str:
    """Lit le fichier source, avec détection d'encodage si ce n'est pas de l'UTF-8"""
    try:
        with open(path, "rb") as f:
            raw = f.read()
    except OSError as e:
        raise ConversionError(f"Erreur lors de la lecture du fichier {path}: {e}") from e

    try:
        return raw.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        if not detect_encoding:
            raise ConversionError(f"Le fichier {path} n'est pas encodé en UTF-8: {e}") from e

    encoding = chardet.detect(raw).get("encoding") or "utf-8"
    logger.debug(f"Encodage détecté pour {path}: {encoding}")
    try:
        return raw.decode(encoding)
    except (UnicodeDecodeError, LookupError) as e:
        raise ConversionError(f"Impossible de décoder {path} ({encoding}): {e}") from e


def parse_document(text: str, source: Any = "<texte>") -> Dict[str, Any]:
    try:
        document = json.loads(text)
    except json.JSONDecodeError as e:
        raise ConversionError(
            f"Le parseur JSON n'a pas pu lire {source}. Est-ce un JSON valide ? ({e})"
        ) from e

    if not isinstance(document, dict):
        raise ConversionError(f"{source}: un objet JSON est attendu au premier niveau")
    return document


def _current_umask() -> int:
    mask = os.umask(0)
    os.umask(mask)
    return mask


def write_atomically(path: Path, content: str) -> None:
    """Écrit le fichier en une seule opération (fichier temporaire puis remplacement)"""
    target = Path(path)
    temp_name: Optional[str] = None
    try:
        with tempfile.NamedTemporaryFile('w', encoding='utf-8', dir=target.parent,
                                         prefix=f".{target.name}.", suffix=".tmp",
                                         delete=False) as tmp:
            temp_name = tmp.name
            tmp.write(content)
        # Le fichier temporaire est créé en 0600, la sortie suit le umask
        os.chmod(temp_name, 0o666 & ~_current_umask())
        os.replace(temp_name, target)
    except OSError as e:
        if temp_name and os.path.exists(temp_name):
            os.unlink(temp_name)
        raise ConversionError(f"Problème lors de l'écriture du fichier final {target}: {e}") from e


def target_file_name(source: Path, target: Optional[Path] = None, marker: str = "cd2") -> Path:
    """Nom du fichier de sortie: le marqueur est inséré avant l'extension"""
    if target:
        return Path(target)
    source = Path(source)
    if source.suffix:
        return source.with_name(f"{source.stem}.{marker}{source.suffix}")
    return source.with_name(f"{source.name}.{marker}")


def load_configuration(config_path: Optional[Path] = None) -> ConversionConfig:
    """Charge la configuration depuis un fichier ou utilise les valeurs par défaut"""
    if config_path and config_path.exists():
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                config_data = json.load(f)

            modules_file = config_data.get("modules_file")
            return ConversionConfig(
                pretty_print=config_data.get("pretty_print", True),
                indent=int(config_data.get("indent", 4)),
                target_marker=config_data.get("target_marker", "cd2"),
                modules_file=(config_path.parent / modules_file) if modules_file else DEFAULT_MODULES_FILE,
                encoding_detection=config_data.get("encoding_detection", True)
            )
        except (OSError, ValueError, TypeError, AttributeError) as e:
            logger.warning(f"Erreur lors du chargement de la configuration: {e}")

    return ConversionConfig()
