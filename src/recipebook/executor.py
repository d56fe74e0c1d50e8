"""Recipe dispatch: name resolution, parameter binding and execution."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Callable, Sequence

from rich.markup import escape

from recipebook.logging import Logger
from recipebook.parser import BodyLine, Recipe, RecipeBook
from recipebook.process_runner import (
    CommandOutputTypes,
    ProcessRunner,
    child_environment,
    default_shell,
    make_process_runner,
    run_concurrent,
    run_sequential,
)
from recipebook.substitution import Scope, evaluate_variables, render_template
from recipebook.temp_script import TempScript

# Exit status reported when the shell or script interpreter cannot be started
EXIT_COMMAND_NOT_FOUND = 127


class DispatchState(enum.Enum):
    IDLE = "idle"
    RESOLVING = "resolving"
    BINDING = "binding"
    EXECUTING = "executing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    INTERRUPTED = "interrupted"


class InvocationError(Exception):
    """Raised when a request cannot be dispatched. No command has run."""

    pass


class NotFoundError(InvocationError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Recipe not found: {name}")


class MissingArgumentError(InvocationError):
    def __init__(self, recipe: str, parameter: str):
        self.recipe = recipe
        self.parameter = parameter
        super().__init__(f"Recipe '{recipe}' missing required argument: {parameter}")


class TooManyArgumentsError(InvocationError):
    def __init__(self, recipe: str, expected: int, supplied: int):
        self.recipe = recipe
        self.expected = expected
        self.supplied = supplied
        super().__init__(
            f"Recipe '{recipe}' takes at most {expected} argument(s) but {supplied} were supplied"
        )


class ExecutionError(Exception):
    """Raised when recipe execution fails."""

    pass


class CommandFailedError(ExecutionError):
    """A body line's command exited with a non-zero status.

    A child killed by signal N (negative return code) is reported as 128 + N,
    the status a shell would report.
    """

    def __init__(self, recipe: str, command: str, exit_code: int):
        self.recipe = recipe
        self.command = command
        if exit_code < 0:
            self.signal = -exit_code
            self.exit_code = 128 + self.signal
            message = f"Recipe '{recipe}' killed by signal {self.signal} (exit code {self.exit_code})"
        else:
            self.signal = None
            self.exit_code = exit_code
            message = f"Recipe '{recipe}' failed with exit code {exit_code}"
        super().__init__(message)


class ExecutionInterrupted(ExecutionError):
    """The invocation was interrupted and every live child was terminated."""

    def __init__(self, recipe: str):
        self.recipe = recipe
        super().__init__(f"Recipe '{recipe}' interrupted")


@dataclass(frozen=True)
class Invocation:
    requested_name: str | None
    supplied_args: tuple[str, ...] = ()


@dataclass
class InvocationResult:
    recipe_name: str
    state: DispatchState
    exit_code: int = 0
    commands: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class _RenderedLine:
    """A body line after interpolation, ready to hand to the process layer."""

    source: BodyLine
    commands: tuple[str, ...]


class Executor:
    """Dispatches invocations against a parsed RecipeBook.

    Variables are resolved once, on first use, and are read-only afterwards.
    """

    def __init__(
        self,
        book: RecipeBook,
        logger: Logger,
        process_runner_factory: Callable[[CommandOutputTypes, Logger], ProcessRunner] = make_process_runner,
        output: CommandOutputTypes = CommandOutputTypes.ALL,
        overrides: dict[str, str] | None = None,
        shell: list[str] | None = None,
    ):
        """Initialize executor.

        Args:
            book: Parsed recipe file
            logger: Logger for echoed commands and diagnostics
            process_runner_factory: Creates the ProcessRunner used for children
            output: Which child output streams are shown
            overrides: Externally supplied variable values
            shell: Fallback shell when the recipe file does not ``set shell``
        """
        self.book = book
        self.state = DispatchState.IDLE
        self._logger = logger
        self._runner = process_runner_factory(output, logger)
        self._overrides = dict(overrides or {})
        self._fallback_shell = shell
        self._variables: dict[str, str] | None = None

    @property
    def variables(self) -> dict[str, str]:
        """Resolved variable values (declared defaults with overrides applied).

        Raises:
            UnknownOverrideError: If an override names an undeclared variable
            EvaluationError: If a variable's value cannot be evaluated
        """
        if self._variables is None:
            expressions = {name: v.expression for name, v in self.book.variables.items()}
            self._variables = evaluate_variables(
                expressions, self.book.variable_order, self._overrides
            )
            for name, value in self._variables.items():
                self._logger.debug(f"[dim]{name} := {escape(repr(value))}[/dim]")
        return self._variables

    @property
    def shell(self) -> list[str]:
        return self.book.settings.shell or self._fallback_shell or default_shell()

    def resolve(self, name: str | None) -> Recipe:
        """Map a requested name to a recipe.

        No name selects the default recipe. Aliases resolve in one hop.

        Raises:
            NotFoundError: If the name is neither a recipe nor an alias
        """
        if name is None:
            recipe = self.book.default_recipe
            if recipe is None:
                raise NotFoundError("(default)")
            return recipe

        recipe = self.book.get_recipe(name)
        if recipe is None:
            raise NotFoundError(name)
        return recipe

    def bind(self, recipe: Recipe, args: Sequence[str]) -> dict[str, str]:
        """Bind positional arguments to a recipe's parameters.

        A variadic parameter takes every remaining argument, joined by spaces.
        Defaults are evaluated with variables and earlier parameters in scope.

        Raises:
            MissingArgumentError: If a required parameter has no argument
            TooManyArgumentsError: If arguments remain after binding
        """
        scope = Scope(self.variables)
        remaining = list(args)
        values: dict[str, str] = {}

        for parameter in recipe.parameters:
            if parameter.variadic and remaining:
                values[parameter.name] = " ".join(remaining)
                remaining = []
            elif not parameter.variadic and remaining:
                values[parameter.name] = remaining.pop(0)
            elif parameter.default is not None:
                values[parameter.name] = scope.child(values).evaluate(parameter.default)
            elif not parameter.required:
                values[parameter.name] = ""
            else:
                raise MissingArgumentError(recipe.name, parameter.name)

        if remaining:
            raise TooManyArgumentsError(recipe.name, len(recipe.parameters), len(args))

        return values

    def invoke(
        self,
        name: str | None,
        args: Sequence[str] = (),
        dry_run: bool = False,
    ) -> InvocationResult:
        """Resolve, bind and run a recipe.

        Args:
            name: Recipe or alias name, or None for the default recipe
            args: Positional arguments for the recipe's parameters
            dry_run: Echo the rendered commands without running them

        Returns:
            InvocationResult in the SUCCEEDED state

        Raises:
            InvocationError: Resolution or binding failed (nothing ran)
            EvaluationError, UnknownOverrideError: Variables could not be resolved (nothing ran)
            CommandFailedError: A command failed; later body lines did not run
            ExecutionInterrupted: Interrupted; every live child was terminated
        """
        invocation = Invocation(name, tuple(args))
        label = name or "(default)"

        self._transition(label, DispatchState.RESOLVING)
        try:
            recipe = self.resolve(invocation.requested_name)
            label = recipe.name
            self._transition(label, DispatchState.BINDING)
            parameters = self.bind(recipe, invocation.supplied_args)
            scope = Scope(self.variables, parameters)
            lines = [
                _RenderedLine(
                    body_line,
                    tuple(render_template(c.template, scope) for c in body_line.commands),
                )
                for body_line in recipe.body
            ]
        except Exception:
            self._transition(label, DispatchState.FAILED)
            raise

        self._transition(label, DispatchState.EXECUTING)
        result = InvocationResult(recipe_name=recipe.name, state=DispatchState.EXECUTING)
        try:
            env = child_environment(self._exported_values(recipe, parameters))
            if recipe.shebang:
                self._run_script(recipe, lines[0], env, dry_run, result)
            else:
                for line in lines:
                    self._run_line(recipe, line, env, dry_run, result)
        except KeyboardInterrupt:
            self._transition(label, DispatchState.INTERRUPTED)
            result.state = DispatchState.INTERRUPTED
            raise ExecutionInterrupted(recipe.name)
        except CommandFailedError as e:
            self._transition(label, DispatchState.FAILED)
            result.state = DispatchState.FAILED
            result.exit_code = e.exit_code
            raise

        self._transition(label, DispatchState.SUCCEEDED)
        result.state = DispatchState.SUCCEEDED
        return result

    def _transition(self, label: str, state: DispatchState) -> None:
        self._logger.trace(f"[dim]{escape(label)}: {self.state.name} -> {state.name}[/dim]")
        self.state = state

    def _exported_values(self, recipe: Recipe, parameters: dict[str, str]) -> dict[str, str]:
        export_all = self.book.settings.export
        exported = {
            name: value
            for name, value in self.variables.items()
            if export_all or self.book.variables[name].exported
        }
        for parameter in recipe.parameters:
            if export_all or parameter.exported:
                exported[parameter.name] = parameters[parameter.name]
        return exported

    def _echo(self, command: str, quiet: bool) -> None:
        if not (quiet or self.book.settings.quiet):
            self._logger.info(f"[bold]{escape(command)}[/bold]")

    def _run_line(
        self,
        recipe: Recipe,
        line: _RenderedLine,
        env: dict[str, str],
        dry_run: bool,
        result: InvocationResult,
    ) -> None:
        for command, text in zip(line.source.commands, line.commands):
            self._echo(text, command.quiet)
        result.commands.extend(line.commands)
        if dry_run:
            return

        cwd = self.book.project_root
        try:
            if line.source.parallel:
                self._logger.debug(f"Starting {len(line.commands)} commands concurrently")
                codes = run_concurrent(
                    self._runner, [self.shell + [text] for text in line.commands], cwd, env
                )
            else:
                codes = [run_sequential(self._runner, self.shell + [line.commands[0]], cwd, env)]
        except OSError as e:
            raise CommandFailedError(recipe.name, line.commands[0], EXIT_COMMAND_NOT_FOUND) from e

        failures = []
        for command, text, code in zip(line.source.commands, line.commands, codes):
            if code == 0:
                continue
            if command.ignore_errors:
                self._logger.warn(
                    f"[yellow]Ignoring exit code {code} from: {escape(text)}[/yellow]"
                )
            else:
                failures.append((text, code))

        if failures:
            if line.source.parallel:
                for text, code in failures:
                    self._logger.error(f"[red]Exit code {code} from: {escape(text)}[/red]")
            text, code = failures[0]
            raise CommandFailedError(recipe.name, text, code)

    def _run_script(
        self,
        recipe: Recipe,
        line: _RenderedLine,
        env: dict[str, str],
        dry_run: bool,
        result: InvocationResult,
    ) -> None:
        script = line.commands[0]
        result.commands.append(script)
        if dry_run:
            self._logger.info(escape(script))
            return

        with TempScript(self._logger, script, recipe.name) as cmd:
            try:
                code = run_sequential(self._runner, cmd, self.book.project_root, env)
            except OSError as e:
                raise CommandFailedError(recipe.name, script, EXIT_COMMAND_NOT_FOUND) from e
        if code != 0:
            raise CommandFailedError(recipe.name, script, code)
