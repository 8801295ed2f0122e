"""Full-screen terminal picker on top of a SelectorSession.

Keys:
  up / down, ctrl-p / ctrl-n   move
  tab                          mark for multi-select
  enter                        open
  ctrl-e                       edit
  ctrl-d                       delete
  ctrl-y                       copy URL
  esc, ctrl-c                  abort
"""
import logging
from typing import List, Optional, Tuple

from prompt_toolkit.application import Application
from prompt_toolkit.buffer import Buffer
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.layout import HSplit, Layout, VSplit, Window
from prompt_toolkit.layout.controls import BufferControl, FormattedTextControl
from prompt_toolkit.styles import Style

from bkmr.config import get_config
from bkmr.models import ScoredCandidate
from bkmr.ranking import searchable_text
from bkmr.session import Action, Selection, SelectorSession, SessionState

logger = logging.getLogger(__name__)

Fragments = List[Tuple[str, str]]

STYLE = Style.from_dict({
    "cursor": "bold",
    "mark": "#00aa00 bold",
    "match": "#ffaa00 bold",
    "id": "#888888",
    "status": "#0088ff",
    "error": "#ff0000 bold",
    "prompt": "#00aa00 bold",
})

ACTION_KEYS = {
    "enter": Action.OPEN,
    "c-e": Action.EDIT,
    "c-d": Action.DELETE,
    "c-y": Action.COPY,
}


def format_candidate(scored: ScoredCandidate, is_current: bool = False, is_marked: bool = False) -> Fragments:
    """Build the styled fragments for one result row with matches highlighted."""
    base = "class:cursor" if is_current else ""
    fragments: Fragments = [
        (base, "> " if is_current else "  "),
        ("class:mark", "* " if is_marked else "  "),
    ]

    text = searchable_text(scored.bookmark)
    positions = set(scored.positions)
    for index, char in enumerate(text):
        style = f"{base} class:match" if index in positions else base
        # Merge runs of equally styled characters
        if fragments and fragments[-1][0] == style and len(fragments) > 2:
            fragments[-1] = (style, fragments[-1][1] + char)
        else:
            fragments.append((style, char))

    fragments.append(("class:id", f" [{scored.id}]"))
    return fragments


def format_status(session: SelectorSession) -> Fragments:
    """Status line: match count, ranking indicator and inline query errors."""
    fragments: Fragments = [
        ("class:status", f"{len(session.results)}/{len(session.bookmarks)}"),
    ]
    if session.marked:
        fragments.append(("class:mark", f" ({len(session.marked)} marked)"))
    if session.state is SessionState.RANKING:
        fragments.append(("class:status", " ..."))
    if session.error:
        fragments.append(("class:error", f"  {session.error}"))
    return fragments


class Picker:
    """prompt_toolkit application that renders a session and forwards input to it."""

    def __init__(self, session: SelectorSession, max_rows: Optional[int] = None, initial_query: str = ""):
        if max_rows is None:
            max_rows = get_config().picker.max_rows
        self.session = session
        self.max_rows = max_rows
        self.initial_query = initial_query
        self.buffer = Buffer(multiline=False, on_text_changed=self._on_text_changed)
        self.app = self._create_application()
        session.on_render = lambda _session: self.app.invalidate()

    def _on_text_changed(self, buffer: Buffer) -> None:
        self.session.update(buffer.text)

    def _list_fragments(self) -> Fragments:
        session = self.session
        marked = set(session.marked)
        # Keep the cursor row visible
        start = max(0, session.cursor - self.max_rows + 1)
        rows = session.results[start:start + self.max_rows]

        fragments: Fragments = []
        for offset, scored in enumerate(rows):
            index = start + offset
            fragments.extend(format_candidate(
                scored,
                is_current=index == session.cursor,
                is_marked=scored.id in marked,
            ))
            fragments.append(("", "\n"))
        return fragments

    def _key_bindings(self) -> KeyBindings:
        kb = KeyBindings()

        @kb.add("up")
        @kb.add("c-p")
        def _up(event):
            self.session.move_cursor(-1)

        @kb.add("down")
        @kb.add("c-n")
        def _down(event):
            self.session.move_cursor(1)

        @kb.add("tab")
        def _mark(event):
            self.session.toggle_mark()
            self.session.move_cursor(1)

        @kb.add("escape", eager=True)
        @kb.add("c-c")
        def _abort(event):
            event.app.exit(result=self.session.abort())

        for key, action in ACTION_KEYS.items():
            self._bind_action(kb, key, action)

        return kb

    def _bind_action(self, kb: KeyBindings, key: str, action: Action) -> None:
        @kb.add(key)
        def _commit(event):
            event.app.exit(result=self.session.commit(action))

    def _create_application(self) -> Application:
        input_window = Window(BufferControl(buffer=self.buffer), height=1)
        container = HSplit([
            Window(FormattedTextControl(self._list_fragments), height=self.max_rows),
            Window(height=1, char="-", style="class:status"),
            Window(FormattedTextControl(lambda: format_status(self.session)), height=1),
            VSplit([
                Window(FormattedTextControl([("class:prompt", "> ")]), width=2, dont_extend_width=True),
                input_window,
            ]),
        ])
        return Application(
            layout=Layout(container, focused_element=input_window),
            key_bindings=self._key_bindings(),
            style=STYLE,
            full_screen=True,
        )

    async def run(self) -> Selection:
        if self.initial_query:
            # Fires on_text_changed, which starts the first ranking
            self.buffer.insert_text(self.initial_query)
        else:
            self.session.update("")
        result = await self.app.run_async()
        if result is None:
            result = self.session.abort() if not self.session.is_finished else Selection.cancelled()
        return result


async def run_picker(
    session: SelectorSession,
    max_rows: Optional[int] = None,
    initial_query: str = "",
) -> Selection:
    """Run the picker until the user commits or aborts.

    Returns:
        The user's Selection
    """
    return await Picker(session, max_rows, initial_query).run()
