from cmdflow.bridge.windows import StaticWindowLookup, WindowLookup, suggest_window_titles


class BrokenLookup:
    def list_open_windows(self):
        raise OSError("no display")


def test_static_lookup_satisfies_protocol():
    assert isinstance(StaticWindowLookup(), WindowLookup)


def test_suggestions_filter_dedupe_and_limit():
    lookup = StaticWindowLookup(["Untitled - Notepad", "  ", "notes.txt - Notepad", "Untitled - Notepad", "Calculator"])
    assert suggest_window_titles(lookup, "NOTEPAD") == ["Untitled - Notepad", "notes.txt - Notepad"]
    assert suggest_window_titles(lookup, "", limit=2) == ["Untitled - Notepad", "notes.txt - Notepad"]
    assert suggest_window_titles(lookup, "calc") == ["Calculator"]


def test_suggestions_are_best_effort():
    assert suggest_window_titles(BrokenLookup(), "x") == []
    assert suggest_window_titles(None, "x") == []
    assert suggest_window_titles(StaticWindowLookup(["a"]), limit=0) == []
