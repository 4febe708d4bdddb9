import unittest
from unittest import mock

from blockbuster_index.orchestrate import SignalUpdateError, orchestrate_signal
from blockbuster_index.scoring.normalize import calculate_scores
from blockbuster_index.window import InMemoryObservationStore, InMemoryWindowStore, SlidingWindowService

DAY = 1_704_067_200  # epoch seconds


class TestOrchestrateSignal(unittest.TestCase):
    def test_returns_windowed_scores_not_normalized(self) -> None:
        service = mock.Mock()
        service.get_windowed_scores.return_value = {"CA": 10, "TX": 50, "NY": 0}
        normalize = mock.Mock(return_value={"CA": 0.05, "TX": 0.2})
        scraper = mock.Mock(return_value={"CA": 10, "TX": 50})

        out = orchestrate_signal(
            scraper=scraper,
            window_service=service,
            get_workforce_data=lambda: {"CA": 1000},
            normalize=normalize,
            timestamp=DAY,
        )

        self.assertEqual(out, {"CA": 10, "TX": 50, "NY": 0})
        scraper.assert_called_once_with(DAY)
        normalize.assert_called_once_with({"CA": 10, "TX": 50}, {"CA": 1000})
        self.assertEqual(
            service.update_window.call_args_list,
            [mock.call("CA", 10, DAY * 1000), mock.call("TX", 50, DAY * 1000)],
        )

    def test_failed_state_does_not_stop_others(self) -> None:
        service = mock.Mock()

        def _update(state, value, ts):
            if state == "TX":
                raise RuntimeError("write failed")

        service.update_window.side_effect = _update

        with self.assertRaises(SignalUpdateError) as ctx:
            orchestrate_signal(
                scraper=lambda ts: {"CA": 1, "TX": 2, "NY": 3},
                window_service=service,
                get_workforce_data=dict,
                normalize=lambda raw, wf: {},
                timestamp=DAY,
            )

        self.assertEqual(ctx.exception.failed_states, ["TX"])
        self.assertEqual([c.args[0] for c in service.update_window.call_args_list], ["CA", "TX", "NY"])
        service.get_windowed_scores.assert_not_called()

    def test_scraper_failure_propagates(self) -> None:
        service = mock.Mock()

        def _boom(ts):
            raise RuntimeError("scrape failed")

        with self.assertRaises(RuntimeError):
            orchestrate_signal(_boom, service, dict, lambda raw, wf: {}, DAY)
        service.update_window.assert_not_called()

    def test_workforce_failure_propagates(self) -> None:
        service = mock.Mock()
        workforce = mock.Mock(side_effect=RuntimeError("census down"))
        with self.assertRaises(RuntimeError):
            orchestrate_signal(lambda ts: {"CA": 1}, service, workforce, lambda raw, wf: {}, DAY)
        service.update_window.assert_not_called()

    def test_with_real_window(self) -> None:
        obs = InMemoryObservationStore()
        service = SlidingWindowService(InMemoryWindowStore(), obs.get_old_day_value, ["CA", "TX", "NY"])

        def _scrape(ts):
            counts = {"CA": 10, "TX": 50}
            for state, v in counts.items():
                obs.record(state, ts * 1000, v)
            return counts

        first = orchestrate_signal(_scrape, service, dict, lambda raw, wf: calculate_scores(raw), DAY)
        self.assertEqual(first, {"CA": 10, "TX": 50, "NY": 0})

        second = orchestrate_signal(
            lambda ts: {"CA": 20, "TX": 51}, service, dict, lambda raw, wf: calculate_scores(raw), DAY + 86400
        )
        self.assertEqual(second, {"CA": 15, "TX": 51, "NY": 0})


if __name__ == "__main__":
    unittest.main()
