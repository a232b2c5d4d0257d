"""Tests for input classification."""

from __future__ import annotations

from blockterm.services.classifier import CommandKind, classify, is_ai_input


class TestClassify:
    def test_special(self):
        parsed = classify("!stats")
        assert parsed.kind is CommandKind.SPECIAL
        assert parsed.argument == "stats"

    def test_question_mark(self):
        parsed = classify("?how do I list files")
        assert parsed.kind is CommandKind.AI
        assert parsed.verb == "?"
        assert parsed.argument == "how do I list files"

    def test_ai_prefix(self):
        parsed = classify("ai  tell me a joke")
        assert parsed.kind is CommandKind.AI
        assert parsed.verb == "ai"
        assert parsed.argument == "tell me a joke"

    def test_explain(self):
        parsed = classify("explain list comprehensions")
        assert parsed.kind is CommandKind.AI
        assert parsed.verb == "explain"

    def test_project_commands(self):
        for verb in ("edit", "analyze", "read", "project"):
            parsed = classify(f"{verb} notes.txt")
            assert parsed.kind is CommandKind.PROJECT
            assert parsed.verb == verb
            assert parsed.argument == "notes.txt"

    def test_system(self):
        parsed = classify("ls -la")
        assert parsed.kind is CommandKind.SYSTEM
        assert parsed.argument == "ls -la"

    def test_prefix_requires_space(self):
        assert classify("editor foo").kind is CommandKind.SYSTEM
        assert classify("readlink x").kind is CommandKind.SYSTEM
        assert classify("ai").kind is CommandKind.SYSTEM

    def test_raw_preserved(self):
        assert classify("ask something").raw == "ask something"


class TestIsAiInput:
    def test_project_counts_as_ai(self):
        assert is_ai_input("edit a.txt")

    def test_special_is_not_ai(self):
        assert not is_ai_input("!help")

    def test_system_is_not_ai(self):
        assert not is_ai_input("echo hi")
