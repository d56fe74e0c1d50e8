"""Tests for config module."""

import unittest
from pathlib import Path
from tempfile import TemporaryDirectory
from unittest.mock import patch

from recipebook.config import (
    Config,
    ConfigError,
    PROJECT_CONFIG_NAME,
    find_project_config,
    get_machine_config_path,
    get_user_config_path,
    load_config,
    parse_config_file,
)


class TestGetUserConfigPath(unittest.TestCase):
    """
    Tests for get_user_config_path function.
    """

    @patch("platformdirs.user_config_dir")
    def test_returns_path_from_platformdirs(self, mock_user_config_dir):
        """
        Test that get_user_config_path uses platformdirs.user_config_dir.
        """
        mock_user_config_dir.return_value = "/home/user/.config/recipebook"
        result = get_user_config_path()
        mock_user_config_dir.assert_called_once_with("recipebook")
        self.assertEqual(result, Path("/home/user/.config/recipebook/config.yml"))


class TestGetMachineConfigPath(unittest.TestCase):
    @patch("platformdirs.site_config_dir")
    def test_returns_path_from_platformdirs(self, mock_site_config_dir):
        mock_site_config_dir.return_value = "/etc/xdg/recipebook"
        result = get_machine_config_path()
        mock_site_config_dir.assert_called_once_with("recipebook")
        self.assertEqual(result, Path("/etc/xdg/recipebook/config.yml"))


class TestFindProjectConfig(unittest.TestCase):
    """
    Tests for find_project_config function.
    """

    def test_finds_config_in_start_dir(self):
        with TemporaryDirectory() as tmpdir:
            config_path = Path(tmpdir) / PROJECT_CONFIG_NAME
            config_path.write_text("log_level: debug\n")

            self.assertEqual(find_project_config(Path(tmpdir)), config_path.resolve())

    def test_walks_up_to_parent(self):
        """
        Test that the nearest config above the start directory is found.
        """
        with TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            config_path = root / PROJECT_CONFIG_NAME
            config_path.write_text("")
            nested = root / "src" / "pkg"
            nested.mkdir(parents=True)

            self.assertEqual(find_project_config(nested), config_path.resolve())

    def test_returns_none_when_absent(self):
        with TemporaryDirectory() as tmpdir:
            nested = Path(tmpdir) / "empty"
            nested.mkdir()
            result = find_project_config(nested)
            if result is not None:
                # A config above the temp dir belongs to the machine running the tests
                self.assertFalse(str(result).startswith(str(nested.resolve())))


class TestParseConfigFile(unittest.TestCase):
    """
    Tests for parse_config_file function.
    """

    def setUp(self):
        self._tmpdir = TemporaryDirectory()
        self.addCleanup(self._tmpdir.cleanup)
        self.path = Path(self._tmpdir.name) / "config.yml"

    def write(self, text):
        self.path.write_text(text)
        return self.path

    def test_missing_file_returns_none(self):
        self.assertIsNone(parse_config_file(self.path))

    def test_empty_file_is_valid(self):
        config = parse_config_file(self.write(""))
        self.assertEqual(config, Config(sources=[self.path]))

    def test_all_keys(self):
        config = parse_config_file(
            self.write(
                "log_level: debug\n"
                "output: err\n"
                "shell: [bash, -cu]\n"
                "variables:\n"
                "  dev: 0\n"
                "  verbose: true\n"
                "  name: docs\n"
            )
        )
        self.assertEqual(config.log_level, "debug")
        self.assertEqual(config.output, "err")
        self.assertEqual(config.shell, ["bash", "-cu"])
        self.assertEqual(config.variables, {"dev": "0", "verbose": "true", "name": "docs"})

    def test_shell_string_is_split(self):
        config = parse_config_file(self.write("shell: zsh -c\n"))
        self.assertEqual(config.shell, ["zsh", "-c"])

    def test_invalid_yaml(self):
        with self.assertRaises(ConfigError) as context:
            parse_config_file(self.write("log_level: [debug\n"))
        self.assertIn("Error parsing YAML", str(context.exception))

    def test_top_level_must_be_mapping(self):
        with self.assertRaises(ConfigError):
            parse_config_file(self.write("- debug\n"))

    def test_unknown_key(self):
        with self.assertRaises(ConfigError) as context:
            parse_config_file(self.write("colour: always\n"))
        self.assertIn("unknown key(s): colour", str(context.exception))

    def test_empty_shell_list(self):
        with self.assertRaises(ConfigError):
            parse_config_file(self.write("shell: []\n"))

    def test_log_level_must_be_string(self):
        with self.assertRaises(ConfigError):
            parse_config_file(self.write("log_level: 3\n"))

    def test_variables_must_be_mapping(self):
        with self.assertRaises(ConfigError):
            parse_config_file(self.write("variables: [dev]\n"))

    def test_variable_values_must_be_scalars(self):
        with self.assertRaises(ConfigError) as context:
            parse_config_file(self.write("variables:\n  dev: [1, 2]\n"))
        self.assertIn("Variable 'dev' must be a scalar value", str(context.exception))


class TestConfigMerge(unittest.TestCase):
    def test_later_values_win(self):
        base = Config(log_level="warn", output="all", variables={"dev": "1", "port": "80"})
        override = Config(output="none", variables={"dev": "0"})

        merged = base.merge(override)

        self.assertEqual(merged.log_level, "warn")
        self.assertEqual(merged.output, "none")
        self.assertEqual(merged.variables, {"dev": "0", "port": "80"})


class TestLoadConfig(unittest.TestCase):
    """
    Tests for the machine < user < project precedence.
    """

    def test_precedence(self):
        with TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            machine = root / "machine.yml"
            machine.write_text("log_level: error\noutput: none\nvariables:\n  dev: machine\n")
            user = root / "user.yml"
            user.write_text("output: out\nvariables:\n  dev: user\n")
            project = root / "project"
            project.mkdir()
            (project / PROJECT_CONFIG_NAME).write_text("variables:\n  dev: project\n")

            with patch("recipebook.config.get_machine_config_path", return_value=machine), patch(
                "recipebook.config.get_user_config_path", return_value=user
            ):
                config = load_config(project)

            self.assertEqual(config.log_level, "error")
            self.assertEqual(config.output, "out")
            self.assertEqual(config.variables, {"dev": "project"})
            self.assertEqual(len(config.sources), 3)

    def test_no_files(self):
        with TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            with patch(
                "recipebook.config.get_machine_config_path", return_value=root / "none.yml"
            ), patch(
                "recipebook.config.get_user_config_path", return_value=root / "none.yml"
            ), patch("recipebook.config.find_project_config", return_value=None):
                config = load_config(root)

            self.assertEqual(config, Config())


if __name__ == "__main__":
    unittest.main()
