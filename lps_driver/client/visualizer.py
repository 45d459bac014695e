"""
MODULE OVERVIEW:
The Rich terminal dashboard for a running PollLoop.

WHAT IS HAPPENING HERE:
The dashboard is just another EventSink consumer. It subscribes to all three
channels, hooks the loop's state changes, and redraws a Layout four times a
second while the loop task is alive.
"""

from rich.live import Live
from rich.layout import Layout
from rich.panel import Panel
from rich.table import Table
from collections import deque
from datetime import datetime
import asyncio

from lps_driver.client.poll_loop import LoopState, PollLoop
from lps_driver.shared.events import CHANNELS
from lps_driver.shared.models import LongPollEvent, PresenceChanged

STATE_COLORS = {
    LoopState.POLLING: "green",
    LoopState.ACQUIRING: "yellow",
    LoopState.IDLE: "yellow",
    LoopState.TERMINATED: "red",
}

class Visualizer:
    def __init__(self, loop: PollLoop):
        self.loop = loop
        self.recent_events = deque(maxlen=10)
        self.timeline = deque(maxlen=5)
        self._unsubscribers = []

    def on_state_change(self, state: LoopState):
        ts = datetime.now().strftime("%H:%M:%S")
        self.timeline.appendleft(f"[{ts}] State: {state.value}")

    async def on_event(self, event: LongPollEvent):
        ts = datetime.now().strftime("%H:%M:%S")
        detail = event.joined() if isinstance(event, PresenceChanged) else ""
        self.recent_events.appendleft((ts, event.channel, detail))

    def attach(self):
        self.loop.on_state_change = self.on_state_change
        for channel in CHANNELS:
            self._unsubscribers.append(self.loop.sink.subscribe(channel, self.on_event))

    def detach(self):
        self.loop.on_state_change = None
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

    def generate_layout(self) -> Layout:
        layout = Layout()
        layout.split_column(
            Layout(name="header", size=3),
            Layout(name="main")
        )
        layout["main"].split_row(
            Layout(name="left", ratio=2),
            Layout(name="right", ratio=1)
        )
        layout["right"].split_column(
            Layout(name="stats"),
            Layout(name="timeline")
        )

        state = self.loop.state
        color = STATE_COLORS[state]
        server = self.loop.server
        where = f" | {server.host} ts={server.ts}" if server else ""
        layout["header"].update(Panel(f"[{color} bold]Long Poll | State: {state.value}{where}[/]", style=color))

        table = Table(title="Live Event Feed", expand=True)
        table.add_column("Time", justify="left", style="cyan", no_wrap=True)
        table.add_column("Channel", style="magenta")
        table.add_column("Detail", style="green")
        for e in self.recent_events:
            table.add_row(*e)
        layout["left"].update(Panel(table, title="Feed"))

        stats = self.loop.stats
        stats_text = (
            f"Polls Completed: {stats['polls_completed']}\n"
            f"Events Emitted: {stats['events_emitted']}\n"
            f"Acquisitions: {stats['acquisitions']} (failed {stats['acquisition_failures']})\n"
            f"Transport Errors: {stats['transport_errors']}\n"
            f"Unknown Updates: {stats['unknown_updates']}"
        )
        layout["stats"].update(Panel(stats_text, title="Connection Stats"))
        layout["timeline"].update(Panel("\n".join(self.timeline), title="Timeline"))

        return layout

    async def run(self, loop_task: asyncio.Task):
        self.attach()
        try:
            with Live(self.generate_layout(), refresh_per_second=4) as live:
                while not loop_task.done():
                    live.update(self.generate_layout())
                    await asyncio.sleep(0.25)
                live.update(self.generate_layout())
        finally:
            self.detach()
