import unittest

from petard.infrastructure._config import AcceleratorConfig


class TestAcceleratorConfig(unittest.TestCase):
    def test_defaults(self):
        cfg = AcceleratorConfig()
        self.assertTrue(cfg.enabled)
        self.assertEqual(cfg.priority, 10)
        self.assertEqual(cfg.power_preference, "high-performance")

    def test_validation(self):
        with self.assertRaises(ValueError):
            AcceleratorConfig(priority=0)
        with self.assertRaises(ValueError):
            AcceleratorConfig(init_timeout=0.0)
        with self.assertRaises(ValueError):
            AcceleratorConfig(readback_timeout=-1.0)
        with self.assertRaises(ValueError):
            AcceleratorConfig(power_preference="fastest")

    def test_from_env_empty(self):
        self.assertEqual(AcceleratorConfig.from_env({}), AcceleratorConfig())

    def test_from_env_values(self):
        cfg = AcceleratorConfig.from_env(
            {
                "PETARD_ACCELERATOR": "NONE",
                "PETARD_WEBGPU_PRIORITY": "20",
                "PETARD_WEBGPU_INIT_TIMEOUT": "2.5",
                "PETARD_WEBGPU_READBACK_TIMEOUT": "",
                "PETARD_WEBGPU_POWER_PREFERENCE": "low-power",
            }
        )
        self.assertFalse(cfg.enabled)
        self.assertEqual(cfg.priority, 20)
        self.assertEqual(cfg.init_timeout, 2.5)
        self.assertEqual(cfg.readback_timeout, 30.0)
        self.assertEqual(cfg.power_preference, "low-power")

    def test_from_env_rejects_bad_values(self):
        with self.assertRaises(ValueError):
            AcceleratorConfig.from_env({"PETARD_ACCELERATOR": "cuda"})
        with self.assertRaises(ValueError) as cm:
            AcceleratorConfig.from_env({"PETARD_WEBGPU_PRIORITY": "high"})
        self.assertIn("PETARD_WEBGPU_PRIORITY", str(cm.exception))


if __name__ == "__main__":
    unittest.main()
