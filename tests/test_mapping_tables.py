import unittest

from cd2_converter_core import ConversionError, DEFAULT_MODULES_FILE
from mapping_tables_manager import MappingTables, FieldStatus, FieldStatusKind, PawnStatRule


class TestFieldStatus(unittest.TestCase):
    def test_parse(self):
        self.assertEqual(FieldStatus.parse("deprecated").kind, FieldStatusKind.DEPRECATED)
        self.assertEqual(FieldStatus.parse("ignore").kind, FieldStatusKind.IGNORED)
        status = FieldStatus.parse("DifficultySetting")
        self.assertEqual(status.kind, FieldStatusKind.VALID)
        self.assertEqual(status.module, "DifficultySetting")


class TestPawnStatRule(unittest.TestCase):
    def test_resistance_stats_are_invertible(self):
        rule = PawnStatRule.from_entry("PST_FireDamageTakenMultiplier",
                                       {"CD2_module": "Resistances", "CD2_field": "FireDamageResistance"})
        self.assertTrue(rule.invertible)
        self.assertFalse(rule.is_direct)

    def test_damage_resistance_is_not_invertible(self):
        rule = PawnStatRule.from_entry("PST_DamageResistance",
                                       {"CD2_module": "Resistances", "CD2_field": "DamageResistance"})
        self.assertFalse(rule.invertible)

    def test_direct_module(self):
        rule = PawnStatRule.from_entry("PST_MovementSpeed", {"CD2_module": "None", "CD2_field": "Movespeed"})
        self.assertTrue(rule.is_direct)
        self.assertFalse(rule.invertible)

    def test_malformed_entry(self):
        with self.assertRaises(ConversionError):
            PawnStatRule.from_entry("PST_Broken", {"CD2_field": "Movespeed"})


class TestMappingTables(unittest.TestCase):
    def setUp(self):
        self.data = {
            "TOP_MODULES": {"Name": "ignore", "Old": "deprecated", "MaxActiveEnemies": "Cap"},
            "PAWN_STATS": {"PST_MovementSpeed": {"CD2_module": "None", "CD2_field": "Movespeed"}},
            "VANILLA_ELITE_ENEMIES": ["ED_Spider_Grunt"],
            "VALID_ENEMY_CONTROLS": ["Base", "Elite"],
        }

    def test_from_dict(self):
        tables = MappingTables.from_dict(self.data)
        self.assertEqual(tables.field_status("MaxActiveEnemies").module, "Cap")
        self.assertIsNone(tables.field_status("Foo"))
        self.assertTrue(tables.is_vanilla_elite("ED_Spider_Grunt"))
        self.assertFalse(tables.is_vanilla_elite(None))
        self.assertTrue(tables.is_valid_enemy_control("Elite"))
        self.assertFalse(tables.is_valid_enemy_control("PawnStats"))

    def test_tables_are_read_only(self):
        tables = MappingTables.from_dict(self.data)
        with self.assertRaises(TypeError):
            tables.top_modules["Foo"] = FieldStatus.parse("Cap")

    def test_missing_section(self):
        del self.data["PAWN_STATS"]
        with self.assertRaises(ConversionError):
            MappingTables.from_dict(self.data)

    def test_non_string_status(self):
        self.data["TOP_MODULES"]["Bad"] = 3
        with self.assertRaises(ConversionError):
            MappingTables.from_dict(self.data)

    def test_bundled_tables(self):
        tables = MappingTables.from_json_path(DEFAULT_MODULES_FILE)
        self.assertEqual(tables.field_status("StationaryEnemies").module, "Pools")
        self.assertEqual(tables.field_status("ResupplyCost").kind, FieldStatusKind.IGNORED)
        self.assertFalse(tables.pawn_stat("PST_DamageResistance").invertible)
        self.assertTrue(tables.pawn_stat("PST_FireDamageTakenMultiplier").invertible)
        self.assertTrue(tables.is_valid_enemy_control("Elite"))

    def test_missing_file(self):
        with self.assertRaises(ConversionError):
            MappingTables.from_json_path(DEFAULT_MODULES_FILE.with_name("absent.json"))


if __name__ == "__main__":
    unittest.main()
