#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
CD2 Converter - Moteur de conversion
Enchaîne lecture, extraction multiligne, traduction et écriture d'un fichier
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Any, Optional, Tuple

from cd2_converter_core import (
    ConversionConfig, ConversionError, ConversionResult, IDiagnosticSink,
    CollectingDiagnosticSink, LoggingDiagnosticSink, extract_multilines,
    parse_document, read_source_text, serialize_document, target_file_name,
    write_atomically
)
from mapping_tables_manager import MappingTables
from schema_stages import translate_document

logger = logging.getLogger(__name__)


class DifficultyConverter:
    """Moteur principal de conversion des difficultés CD1 vers CD2"""

    def __init__(self, config: Optional[ConversionConfig] = None,
                 tables: Optional[MappingTables] = None,
                 sink: Optional[IDiagnosticSink] = None):
        self.config = config or ConversionConfig()
        # Les tables sont chargées une seule fois pour toutes les conversions
        self.tables = tables or MappingTables.from_json_path(self.config.modules_file)
        self.sink = sink or LoggingDiagnosticSink()

    def load_source(self, text: str, source: Any = "<texte>") -> Tuple[Dict[str, Any], Optional[str]]:
        """Neutralise la description multiligne puis parse le document"""
        sanitized, multilines = extract_multilines(text)
        return parse_document(sanitized, source), multilines

    def convert_text(self, text: str, sink: Optional[IDiagnosticSink] = None,
                     source: Any = "<texte>") -> str:
        """Convertit le texte d'un document CD1 en texte CD2"""
        original, multilines = self.load_source(text, source)
        converted = translate_document(original, self.tables, sink or self.sink)
        return serialize_document(converted, multilines,
                                  pretty=self.config.pretty_print, indent=self.config.indent)

    def convert_file(self, source_file: Path, target_file: Optional[Path] = None,
                     dry_run: bool = False) -> ConversionResult:
        """Convertit un fichier complet; rien n'est écrit en cas d'échec"""
        source = Path(source_file)
        target = target_file_name(source, target_file, self.config.target_marker)
        run_sink = CollectingDiagnosticSink(forward_to=self.sink)

        try:
            text = read_source_text(source, self.config.encoding_detection)
            output = self.convert_text(text, run_sink, source)
            if not dry_run:
                write_atomically(target, output)
        except ConversionError as e:
            return ConversionResult(
                success=False,
                message=f"Conversion échouée: {source}",
                diagnostics=run_sink.diagnostics,
                errors=[str(e)]
            )

        if dry_run:
            message = f"Simulation réussie: {source} (aucun fichier écrit)"
        else:
            message = f"Conversion réussie: {source} -> {target}"
            logger.debug(f"{len(output)} caractères écrits dans {target}")

        return ConversionResult(
            success=True,
            message=message,
            output_file=None if dry_run else target,
            output_text=output,
            diagnostics=run_sink.diagnostics
        )
