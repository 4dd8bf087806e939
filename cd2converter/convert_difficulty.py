#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
convert_difficulty.py - Conversion d'un fichier Custom Difficulty CD1 en CD2
Usage rapide en ligne de commande
"""

import os
import argparse
import logging
from collections import Counter
from pathlib import Path

from dotenv import load_dotenv

def setup_logging(verbose=False):
    """Configure le système de logging"""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

def create_argument_parser():
    """Crée le parser d'arguments en ligne de commande"""
    parser = argparse.ArgumentParser(
        description="CD2 Converter - Conversion des difficultés CD1 vers CD2",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Exemples:
  python convert_difficulty.py MaDifficulte.json
  python convert_difficulty.py MaDifficulte.json sortie.json --dont-pretty-print
  python convert_difficulty.py MaDifficulte.json --dry-run --verbose
        """
    )

    parser.add_argument("source_file", type=Path,
                        help="Fichier CD1 à convertir")
    parser.add_argument("target_file", type=Path, nargs="?",
                        help="Fichier CD2 de sortie (défaut: <nom>.cd2.<extension> à côté de la source)")

    parser.add_argument("-d", "--dont-pretty-print", action="store_true",
                        help="Écrit le JSON sous forme compacte")
    parser.add_argument("--tables", type=Path,
                        help="Fichier des tables de correspondance (défaut: config/cd2-modules.json)")
    parser.add_argument("--config", type=Path,
                        help="Fichier de configuration JSON")
    parser.add_argument("--dry-run", action="store_true",
                        help="Simulation sans écriture du fichier")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Mode verbeux")
    return parser

def report_diagnostics(diagnostics):
    """Résumé des anomalies relevées pendant la conversion"""
    logger = logging.getLogger(__name__)
    if not diagnostics:
        logger.info("Aucune anomalie relevée")
        return
    logger.info("=== ANOMALIES ===")
    for code, count in Counter(d.code for d in diagnostics).most_common():
        logger.info(f"  - {code}: {count}")

def main(argv=None):
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    # Configuration du logging
    setup_logging(args.verbose)
    logger = logging.getLogger(__name__)

    # Chargement des variables d'environnement
    load_dotenv()

    try:
        from cd2_converter_core import DEFAULT_CONFIG_FILE, load_configuration
        from difficulty_converter import DifficultyConverter

        config_path = args.config or Path(os.getenv('CD2_CONVERTER_CONFIG', DEFAULT_CONFIG_FILE))
        if args.config and not args.config.exists():
            logger.warning(f"Fichier de configuration manquant: {args.config}")
            logger.warning("Utilisation de la configuration par défaut")
        config = load_configuration(config_path)

        # Application des options CLI
        tables_path = args.tables or os.getenv('CD2_MODULES_FILE')
        if tables_path:
            config.modules_file = Path(tables_path)
        if args.dont_pretty_print:
            config.pretty_print = False

        converter = DifficultyConverter(config=config)

        if args.dry_run:
            logger.info("=== MODE SIMULATION ===")
            logger.info("Aucun fichier ne sera écrit")

        logger.info(f"Fichier source: {args.source_file}")
        result = converter.convert_file(args.source_file, args.target_file, dry_run=args.dry_run)
        report_diagnostics(result.diagnostics)

        if result.success:
            logger.info(result.message)
            return 0

        logger.error(result.message)
        for error in result.errors:
            logger.error(f"  - {error}")
        logger.error("Conversion inachevée.")
        return 1

    except KeyboardInterrupt:
        logger.info("Conversion interrompue par l'utilisateur")
        return 130

    except Exception as e:
        logger.error(f"Erreur fatale: {e}")
        if args.verbose:
            import traceback
            logger.debug("Traceback complet:")
            logger.debug(traceback.format_exc())
        logger.error("Conversion inachevée.")
        return 1

if __name__ == "__main__":
    exit(main())
