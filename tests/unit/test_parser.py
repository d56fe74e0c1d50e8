"""Tests for recipe file parsing."""

import textwrap
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory

from recipebook.expressions import Reference, StringLiteral
from recipebook.parser import (
    DefinitionError,
    ParameterKind,
    find_recipe_file,
    parse_recipe_file,
    parse_recipe_text,
)

JUSTFILE = """\
#!/usr/bin/env just --justfile
alias b := build

dev := '1'

# automatically build on each change
autobuild:
    cargo watch -x build

# build release binary
build:
    cargo build

# rebuild docs and start simple static server
docs +PORT='40000':
    cargo doc && http target/doc -p {{PORT}}

fix:
    cargo fix
"""


def parse(text):
    return parse_recipe_text(textwrap.dedent(text), project_root=Path("/project"))


class TestParseRecipeText(unittest.TestCase):
    """
    Tests for the statements of a recipe file.
    """

    def test_parses_recipes_in_declaration_order(self):
        book = parse_recipe_text(JUSTFILE)
        self.assertEqual(book.recipe_names(), ["autobuild", "build", "docs", "fix"])

    def test_parses_variables(self):
        book = parse_recipe_text(JUSTFILE)
        self.assertEqual(book.variables["dev"].expression, StringLiteral("1"))
        self.assertEqual(book.variables["dev"].source, "'1'")
        self.assertFalse(book.variables["dev"].exported)

    def test_parses_alias(self):
        book = parse_recipe_text(JUSTFILE)
        self.assertEqual(book.aliases["b"].target, "build")
        self.assertIs(book.get_recipe("b"), book.get_recipe("build"))
        self.assertEqual(book.aliases_for("build"), ["b"])

    def test_doc_comment_attaches_to_following_recipe(self):
        book = parse_recipe_text(JUSTFILE)
        self.assertEqual(book.recipes["build"].doc, "build release binary")
        self.assertEqual(book.recipes["fix"].doc, "")

    def test_comment_separated_by_blank_line_is_not_a_doc(self):
        book = parse(
            """
            # just a comment

            build:
                cargo build
            """
        )
        self.assertEqual(book.recipes["build"].doc, "")

    def test_plus_parameter_with_default(self):
        recipe = parse_recipe_text(JUSTFILE).recipes["docs"]
        (parameter,) = recipe.parameters
        self.assertEqual(parameter.name, "PORT")
        self.assertEqual(parameter.kind, ParameterKind.PLUS)
        self.assertEqual(parameter.default, StringLiteral("40000"))
        self.assertFalse(parameter.required)
        self.assertEqual(str(parameter), "+PORT='40000'")

    def test_body_lines_keep_placeholders_unrendered(self):
        recipe = parse_recipe_text(JUSTFILE).recipes["docs"]
        (line,) = recipe.body
        self.assertEqual(line.commands[0].template.source, "cargo doc && http target/doc -p {{PORT}}")
        self.assertEqual(list(line.commands[0].template.references()), ["PORT"])

    def test_first_recipe_is_default_without_attribute(self):
        book = parse_recipe_text(JUSTFILE)
        self.assertEqual(book.default_recipe.name, "autobuild")

    def test_default_attribute(self):
        book = parse(
            """
            build:
                cargo build

            [default]
            test:
                cargo test
            """
        )
        self.assertEqual(book.default_recipe.name, "test")
        self.assertFalse(book.recipes["build"].is_default)

    def test_second_default_is_rejected(self):
        with self.assertRaises(DefinitionError) as context:
            parse(
                """
                [default]
                build:
                    cargo build

                [default]
                test:
                    cargo test
                """
            )
        self.assertEqual(context.exception.name, "test")
        self.assertIn("already the default", str(context.exception))

    def test_private_recipes(self):
        book = parse(
            """
            [private]
            helper:
                echo help

            _hidden:
                echo hidden

            public:
                echo public
            """
        )
        self.assertTrue(book.recipes["helper"].private)
        self.assertTrue(book.recipes["_hidden"].private)
        self.assertFalse(book.recipes["public"].private)

    def test_combined_attributes(self):
        book = parse(
            """
            [default, private]
            build:
                cargo build
            """
        )
        self.assertTrue(book.recipes["build"].is_default)
        self.assertTrue(book.recipes["build"].private)

    def test_settings(self):
        book = parse(
            """
            set shell := ["bash", "-cu"]
            set quiet
            set export := false
            """
        )
        self.assertEqual(book.settings.shell, ["bash", "-cu"])
        self.assertTrue(book.settings.quiet)
        self.assertFalse(book.settings.export)

    def test_exported_variable_and_parameter(self):
        book = parse(
            """
            export RUST_LOG := 'debug'

            run $MODE='fast':
                ./run
            """
        )
        self.assertTrue(book.variables["RUST_LOG"].exported)
        self.assertTrue(book.recipes["run"].parameters[0].exported)

    def test_line_prefixes(self):
        book = parse(
            """
            build:
                @echo quiet
                -false
                @-echo both
            """
        )
        commands = [line.commands[0] for line in book.recipes["build"].body]
        self.assertEqual([c.template.source for c in commands], ["echo quiet", "false", "echo both"])
        self.assertEqual([c.quiet for c in commands], [True, False, True])
        self.assertEqual([c.ignore_errors for c in commands], [False, True, True])

    def test_fan_out_group(self):
        """Test that consecutive & lines form one parallel body line."""
        book = parse(
            """
            docw PORT='40000':
                echo before
                & cargo watch -x doc
                & http target/doc -p {{PORT}}
                echo after
            """
        )
        body = book.recipes["docw"].body
        self.assertEqual([line.parallel for line in body], [False, True, False])
        self.assertEqual(
            [c.template.source for c in body[1].commands],
            ["cargo watch -x doc", "http target/doc -p {{PORT}}"],
        )

    def test_line_continuation(self):
        book = parse(
            """
            build:
                cargo build \\
                    --release
                echo done
            """
        )
        body = book.recipes["build"].body
        self.assertEqual(body[0].commands[0].template.source, "cargo build --release")
        self.assertEqual(body[1].commands[0].template.source, "echo done")

    def test_blank_lines_inside_body(self):
        book = parse(
            """
            build:
                echo one

                echo two

            test:
                cargo test
            """
        )
        self.assertEqual(len(book.recipes["build"].body), 2)

    def test_shebang_recipe(self):
        book = parse(
            """
            script:
                #!/usr/bin/env python3
                print("{{dev}}")

            dev := '1'
            """
        )
        recipe = book.recipes["script"]
        self.assertTrue(recipe.shebang)
        self.assertEqual(len(recipe.body), 1)
        self.assertEqual(
            recipe.body[0].commands[0].template.source,
            '#!/usr/bin/env python3\nprint("{{dev}}")\n',
        )

    def test_variable_referencing_variable(self):
        book = parse(
            """
            url := host + ':' + port
            host := 'localhost'
            port := '8080'
            """
        )
        self.assertEqual(book.variable_order, ["host", "port", "url"])

    def test_parameter_default_may_reference_earlier_parameter(self):
        book = parse(
            """
            serve HOST='localhost' URL=HOST:
                echo {{URL}}
            """
        )
        self.assertEqual(book.recipes["serve"].parameters[1].default, Reference("HOST"))

    def test_signature(self):
        book = parse(
            """
            deploy env *FLAGS:
                ./deploy {{env}} {{FLAGS}}
            """
        )
        self.assertEqual(book.recipes["deploy"].signature(), "deploy env *FLAGS")

    def test_trailing_comments_on_statements(self):
        """Test that a # outside string literals ends a statement line."""
        book = parse(
            """
            alias b := build # short form
            dev := '#1'  # issue number
            set quiet # no echo

            # build release binary
            build PORT='#80': # compile
                cargo build # left for the shell
            """
        )
        self.assertEqual(book.aliases["b"].target, "build")
        self.assertEqual(book.variables["dev"].expression, StringLiteral("#1"))
        self.assertEqual(book.variables["dev"].source, "'#1'")
        self.assertTrue(book.settings.quiet)

        recipe = book.recipes["build"]
        self.assertEqual(recipe.doc, "build release binary")
        self.assertEqual(recipe.parameters[0].default, StringLiteral("#80"))
        self.assertEqual(
            recipe.body[0].commands[0].template.source, "cargo build # left for the shell"
        )


class TestDefinitionErrors(unittest.TestCase):
    """
    Tests for malformed or inconsistent recipe files.
    """

    def assertDefinitionError(self, text, fragment):
        with self.assertRaises(DefinitionError) as context:
            parse(text)
        self.assertIn(fragment, str(context.exception))
        return context.exception

    def test_duplicate_recipe(self):
        error = self.assertDefinitionError(
            """
            build:
                cargo build
            build:
                cargo build --release
            """,
            "Duplicate recipe",
        )
        self.assertEqual(error.name, "build")
        self.assertEqual(error.line, 4)

    def test_duplicate_variable(self):
        self.assertDefinitionError(
            """
            dev := '1'
            dev := '0'
            """,
            "Duplicate variable",
        )

    def test_dangling_alias(self):
        error = self.assertDefinitionError(
            """
            alias t := test

            build:
                cargo build
            """,
            "unknown recipe 'test'",
        )
        self.assertEqual(error.name, "t")

    def test_alias_to_alias(self):
        self.assertDefinitionError(
            """
            alias b := build
            alias bb := b

            build:
                cargo build
            """,
            "aliases must target a recipe",
        )

    def test_alias_clashes_with_recipe(self):
        self.assertDefinitionError(
            """
            alias build := test

            build:
                cargo build

            test:
                cargo test
            """,
            "same name as a recipe",
        )

    def test_required_parameter_after_defaulted(self):
        error = self.assertDefinitionError(
            """
            serve PORT='80' HOST:
                serve {{HOST}}:{{PORT}}
            """,
            "Parameter 'HOST' has no default but follows a parameter with a default",
        )
        self.assertEqual(error.name, "serve")

    def test_variadic_not_last(self):
        self.assertDefinitionError(
            """
            run +FILES out:
                cat {{FILES}} > {{out}}
            """,
            "must be the last parameter",
        )

    def test_duplicate_parameter(self):
        self.assertDefinitionError(
            """
            run a a:
                echo {{a}}
            """,
            "Duplicate parameter 'a'",
        )

    def test_unresolved_placeholder(self):
        error = self.assertDefinitionError(
            """
            docs:
                http target/doc -p {{PORT}}
            """,
            "undefined name 'PORT'",
        )
        self.assertEqual(error.line, 3)

    def test_parameter_default_referencing_later_parameter(self):
        self.assertDefinitionError(
            """
            serve URL=HOST HOST='localhost':
                echo {{URL}}
            """,
            "undefined name 'HOST'",
        )

    def test_variable_referencing_undefined_name(self):
        self.assertDefinitionError("url := host\n", "undefined name 'host'")

    def test_circular_variables(self):
        self.assertDefinitionError(
            """
            a := b
            b := a
            """,
            "Circular variable reference",
        )

    def test_unknown_attribute(self):
        self.assertDefinitionError(
            """
            [linux]
            build:
                cargo build
            """,
            "Unknown attribute",
        )

    def test_attribute_without_recipe(self):
        self.assertDefinitionError(
            """
            [default]
            dev := '1'
            """,
            "Attributes must be followed by a recipe",
        )

    def test_unknown_setting(self):
        self.assertDefinitionError("set fallback\n", "Unknown setting")

    def test_empty_shell(self):
        self.assertDefinitionError("set shell := []\n", "must not be empty")

    def test_recipe_dependencies_not_supported(self):
        self.assertDefinitionError(
            """
            build:
                cargo build

            test: build
                cargo test
            """,
            "not supported",
        )

    def test_unexpected_indentation(self):
        """Test that an indented line outside any recipe is rejected."""
        with self.assertRaises(DefinitionError) as context:
            parse_recipe_text("x := 'a'\n    echo orphan\n")
        self.assertIn("Unexpected indentation", str(context.exception))
        self.assertEqual(context.exception.line, 2)

    def test_unterminated_placeholder(self):
        self.assertDefinitionError(
            """
            build:
                echo {{dev
            """,
            "Unterminated placeholder",
        )

    def test_empty_command_after_prefix(self):
        self.assertDefinitionError(
            """
            build:
                @
            """,
            "Empty command",
        )


class TestFindRecipeFile(unittest.TestCase):
    def test_finds_file_in_parent_directory(self):
        with TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            (root / "justfile").write_text("build:\n    cargo build\n")
            nested = root / "a" / "b"
            nested.mkdir(parents=True)

            self.assertEqual(find_recipe_file(nested), (root / "justfile").resolve())

    def test_prefers_recipefile(self):
        with TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            (root / "justfile").write_text("")
            (root / "Recipefile").write_text("")

            self.assertEqual(find_recipe_file(root).name, "Recipefile")


class TestParseRecipeFile(unittest.TestCase):
    def test_sets_project_root_and_source(self):
        with TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "justfile"
            path.write_text(JUSTFILE)

            book = parse_recipe_file(path)

            self.assertEqual(book.project_root, Path(tmpdir).resolve())
            self.assertEqual(book.recipes["build"].source_file, str(path))

    def test_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            parse_recipe_file(Path("/nonexistent/justfile"))


if __name__ == "__main__":
    unittest.main()
