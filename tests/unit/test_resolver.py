"""Unit tests for the context resolver state machine."""

import pytest

from ollama_completion.models import CompletionContext
from ollama_completion.resolver import Completion, CompletionKind, ContextResolver


def resolve(snapshot, objects, words, cword=None):
    cword = len(words) - 1 if cword is None else cword
    return ContextResolver(snapshot, objects).resolve(CompletionContext.from_words(words, cword))


class TestCommandSlot:
    """Test completion of the subcommand itself."""

    def test_command_names_from_snapshot(self, snapshot, objects):
        result = resolve(snapshot, objects, ["ollama", ""])
        assert result.kind is CompletionKind.COMMANDS
        assert "create" in result.candidates
        assert result.candidates[-2:] == ("--help", "--version")

    def test_static_command_list_without_snapshot(self, objects):
        result = resolve(None, objects, ["ollama", "p"])
        assert {"pull", "push", "ps"} <= set(result.candidates)


class TestPositionalArguments:
    """Test the min/max argument comparison."""

    def test_required_model_offered(self, snapshot, objects):
        result = resolve(snapshot, objects, ["ollama", "run", ""])
        assert result == Completion(CompletionKind.OBJECTS, tuple(objects.models()))

    def test_partial_model_still_offered_after_minimum(self, snapshot, objects):
        result = resolve(snapshot, objects, ["ollama", "run", "llama3.1:latest", "mis"])
        assert result.kind is CompletionKind.OBJECTS

    def test_flags_once_minimum_met_and_word_finished(self, snapshot, objects):
        result = resolve(snapshot, objects, ["ollama", "run", "llama3.1:latest", ""])
        assert result.kind is CompletionKind.FLAGS
        assert result.candidates == ("--format", "--keepalive", "--verbose", "--insecure", "--nowordwrap")

    def test_second_argument_still_required(self, snapshot, objects):
        result = resolve(snapshot, objects, ["ollama", "cp", "llama3.1:latest", ""])
        assert result.kind is CompletionKind.OBJECTS

    def test_max_args_reached(self, snapshot, objects):
        result = resolve(snapshot, objects, ["ollama", "cp", "a", "b", ""])
        assert result == Completion(CompletionKind.FLAGS, ())
        assert objects.model_calls == 0

    def test_flag_values_not_counted(self, snapshot, objects):
        result = resolve(snapshot, objects, ["ollama", "run", "--format", "json", ""])
        assert result.kind is CompletionKind.OBJECTS

    def test_no_argument_command_offers_flags(self, snapshot, objects):
        result = resolve(snapshot, objects, ["ollama", "ls", ""])
        assert result == Completion(CompletionKind.FLAGS, ())
        assert objects.model_calls == 0

    def test_stop_offers_running_models(self, snapshot, objects):
        result = resolve(snapshot, objects, ["ollama", "stop", ""])
        assert result == Completion(CompletionKind.OBJECTS, ("llama3.1:latest",))
        assert objects.model_calls == 0

    def test_help_offers_command_names(self, snapshot, objects):
        result = resolve(snapshot, objects, ["ollama", "help", ""])
        assert result.kind is CompletionKind.COMMANDS
        assert "run" in result.candidates

    def test_create_name_is_free_form(self, snapshot, objects):
        result = resolve(snapshot, objects, ["ollama", "create", ""])
        assert result == Completion(CompletionKind.NONE)


class TestFlags:
    """Test flag completion."""

    def test_constraint_group_pruned(self, snapshot, objects):
        words = ["ollama", "create", "mymodel", "--system", "be brief", "--"]
        result = resolve(snapshot, objects, words)
        assert result == Completion(CompletionKind.FLAGS, ("--file", "--quantize"))

    def test_flags_right_of_cursor_count_as_used(self, snapshot, objects):
        words = ["ollama", "show", "m", "--", "--license"]
        result = resolve(snapshot, objects, words, cword=3)
        assert result == Completion(CompletionKind.FLAGS, ("--verbose",))

    def test_short_alias_counts_as_used(self, snapshot, objects):
        words = ["ollama", "show", "m", "-v", "--"]
        result = resolve(snapshot, objects, words)
        assert "--verbose" not in result.candidates


class TestFlagValues:
    """Test completion of a flag's value."""

    @pytest.mark.parametrize("flag", ["--file", "-f"])
    def test_path_flags_defer_to_filenames(self, snapshot, objects, flag):
        result = resolve(snapshot, objects, ["ollama", "create", "m", flag, ""])
        assert result.kind is CompletionKind.PATHS

    def test_literal_suggestions(self, snapshot, objects):
        result = resolve(snapshot, objects, ["ollama", "run", "m", "--format", ""])
        assert result == Completion(CompletionKind.VALUES, ("json",))

    def test_free_form_value_offers_nothing(self, snapshot, objects):
        result = resolve(snapshot, objects, ["ollama", "create", "m", "--system", ""])
        assert result == Completion(CompletionKind.NONE)

    def test_bool_flag_is_not_waiting_for_value(self, snapshot, objects):
        result = resolve(snapshot, objects, ["ollama", "run", "--verbose", ""])
        assert result.kind is CompletionKind.OBJECTS


class TestFallback:
    """Test commands without metadata."""

    def test_unknown_command_gets_help_only(self, snapshot, objects):
        result = resolve(snapshot, objects, ["ollama", "frobnicate", ""])
        assert result == Completion(CompletionKind.FLAGS, ("--help",))

    def test_no_snapshot_still_offers_required_models(self, objects):
        result = resolve(None, objects, ["ollama", "run", ""])
        assert result.kind is CompletionKind.OBJECTS

    def test_no_snapshot_after_minimum(self, objects):
        result = resolve(None, objects, ["ollama", "run", "llama3.1:latest", ""])
        assert result == Completion(CompletionKind.FLAGS, ("--help",))

    def test_no_snapshot_flag_prefix(self, objects):
        result = resolve(None, objects, ["ollama", "pull", "--"])
        assert result == Completion(CompletionKind.FLAGS, ("--help",))


class TestCompletionFilter:
    """Test prefix filtering of resolved candidates."""

    def test_prefix_and_dedupe(self):
        completion = Completion(CompletionKind.OBJECTS, ("b1", "a1", "b2", "b1"))
        assert completion.filtered("b").candidates == ("b1", "b2")

    def test_paths_untouched(self):
        completion = Completion(CompletionKind.PATHS)
        assert completion.filtered("x") is completion
