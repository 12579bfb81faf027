import unittest
from datetime import datetime, timedelta, timezone

from analysis import classify
from normalize.models import StoryRecord, Status, Priority

NOW = datetime(2025, 3, 10, 9, 0, tzinfo=timezone.utc)


def story(story_id, **kwargs):
    return StoryRecord(id=story_id, description=f"Story {story_id}", **kwargs)


def ids(bucket):
    return [a.id for a in bucket]


class TestClassifierScenarios(unittest.TestCase):
    def test_tight_deadline_is_at_risk(self):
        s = story('A', status=Status.TODO, duration=10, due_date=NOW + timedelta(days=1), priority=Priority.HIGH)
        report = classify([s], NOW)
        self.assertEqual(ids(report.at_risk), ['A'])
        self.assertEqual(report.at_risk[0].days_until_due, 1)
        self.assertEqual(report.overdue, [])
        self.assertEqual(report.need_to_start, [])

    def test_comfortable_todo_needs_start(self):
        s = story('B', status=Status.TODO, duration=4, due_date=NOW + timedelta(days=10), priority=Priority.MEDIUM)
        report = classify([s], NOW)
        self.assertEqual(ids(report.need_to_start), ['B'])
        self.assertAlmostEqual(report.need_to_start[0].urgency_score, 0.8)
        self.assertEqual(report.need_to_start[0].remaining_hours, 4)
        self.assertEqual(report.at_risk, [])

    def test_overspent_overdue_story_in_two_buckets(self):
        s = story('C', status=Status.IN_PROGRESS, duration=10, time_spent=12, due_date=NOW - timedelta(days=1))
        report = classify([s], NOW)
        self.assertEqual(ids(report.overdue), ['C'])
        self.assertEqual(report.overdue[0].urgency_score, 2 * 0.5 * 1000)
        self.assertEqual(report.overdue[0].days_overdue, 1)
        self.assertEqual(report.overdue[0].remaining_hours, 0.0)
        self.assertEqual(ids(report.in_progress), ['C'])
        self.assertEqual(report.in_progress[0].progress_percentage, 120.0)

    def test_closed_story_is_ignored(self):
        s = story('D', status=Status.CLOSED, duration=5, due_date=NOW - timedelta(days=30))
        report = classify([s], NOW)
        self.assertEqual(report.summary.total_active, 0)
        for bucket in (report.overdue, report.at_risk, report.need_to_start, report.in_progress):
            self.assertEqual(bucket, [])


class TestClassifierInvariants(unittest.TestCase):
    def _mixed(self):
        return [
            story('late-1', status=Status.TODO, duration=8, due_date=NOW - timedelta(days=3)),
            story('late-2', status=Status.IN_TEST, duration=2, due_date=NOW - timedelta(days=1), priority=Priority.HIGH),
            story('risky', status=Status.REOPEN, duration=30, due_date=NOW + timedelta(days=2)),
            story('todo', status=Status.TODO, duration=8, due_date=NOW + timedelta(days=5)),
            story('undated', status=Status.TODO, duration=8),
            story('deploy', status=Status.IN_DEPLOY, duration=4, time_spent=4, due_date=NOW + timedelta(days=4)),
            story('done', status=Status.CLOSED, duration=8, due_date=NOW - timedelta(days=10)),
            story('odd', status='Blocked', duration=8, due_date=NOW - timedelta(days=10)),
        ]

    def test_overdue_and_at_risk_are_disjoint(self):
        report = classify(self._mixed(), NOW)
        self.assertEqual(set(ids(report.overdue)) & set(ids(report.at_risk)), set())
        self.assertEqual(set(ids(report.overdue)), {'late-1', 'late-2'})
        self.assertEqual(ids(report.at_risk), ['risky'])

    def test_need_to_start_excludes_risk_buckets(self):
        report = classify(self._mixed(), NOW)
        self.assertEqual(ids(report.need_to_start), ['todo', 'undated'])

    def test_undated_story_has_no_day_count(self):
        report = classify(self._mixed(), NOW)
        undated = [a for a in report.need_to_start if a.id == 'undated'][0]
        self.assertEqual(undated.urgency_score, 0.0)
        self.assertIsNone(undated.to_dict()['days_until_due'])

    def test_reopen_counts_as_active_but_not_to_do(self):
        report = classify(self._mixed(), NOW)
        self.assertEqual(report.summary.total_active, 6)
        self.assertEqual(report.summary.to_do_count, 3)

    def test_unknown_status_is_never_active(self):
        report = classify(self._mixed(), NOW)
        all_ids = set()
        for bucket in (report.overdue, report.at_risk, report.need_to_start, report.in_progress):
            all_ids.update(ids(bucket))
        self.assertNotIn('odd', all_ids)
        self.assertNotIn('done', all_ids)

    def test_in_progress_keeps_input_order(self):
        report = classify(self._mixed(), NOW)
        self.assertEqual(ids(report.in_progress), ['late-2', 'deploy'])
        self.assertEqual(report.summary.in_progress_count, 2)

    def test_overdue_sorted_by_urgency(self):
        report = classify(self._mixed(), NOW)
        # medium To Do (2 * 1.0 * 1000) outranks high In test (3 * 0.3 * 1000)
        self.assertEqual(ids(report.overdue), ['late-1', 'late-2'])
        scores = [a.urgency_score for a in report.overdue]
        self.assertEqual(scores, sorted(scores, reverse=True))

    def test_summary_counts(self):
        report = classify(self._mixed(), NOW)
        self.assertEqual(report.summary.overdue_count, 2)
        self.assertEqual(report.summary.at_risk_count, 1)

    def test_need_to_start_capped_and_stable(self):
        stories = [
            story(f"T{i:02d}", status=Status.TODO, duration=8, due_date=NOW + timedelta(days=20))
            for i in range(15)
        ]
        report = classify(stories, NOW)
        self.assertEqual(len(report.need_to_start), 10)
        # equal scores keep input order
        self.assertEqual(ids(report.need_to_start), [f"T{i:02d}" for i in range(10)])
        self.assertEqual(report.summary.to_do_count, 15)

    def test_need_to_start_ranked_by_urgency(self):
        stories = [
            story('low', status=Status.TODO, duration=8, due_date=NOW + timedelta(days=20), priority=Priority.LOW),
            story('high', status=Status.TODO, duration=8, due_date=NOW + timedelta(days=20), priority=Priority.HIGH),
        ]
        report = classify(stories, NOW)
        self.assertEqual(ids(report.need_to_start), ['high', 'low'])

    def test_zero_duration_progress(self):
        s = story('Z', status=Status.IN_PROGRESS, duration=0, time_spent=3, due_date=NOW + timedelta(days=3))
        report = classify([s], NOW)
        self.assertEqual(report.in_progress[0].progress_percentage, 0.0)
        self.assertEqual(report.in_progress[0].remaining_hours, 0.0)

    def test_idempotent(self):
        stories = self._mixed()
        self.assertEqual(classify(stories, NOW).to_dict(), classify(stories, NOW).to_dict())


class TestClassifierInputs(unittest.TestCase):
    def test_empty_input(self):
        report = classify([], NOW)
        self.assertEqual(report.to_dict(), {
            'overdue': [],
            'at_risk': [],
            'need_to_start': [],
            'in_progress': [],
            'summary': {
                'total_active': 0,
                'overdue_count': 0,
                'at_risk_count': 0,
                'in_progress_count': 0,
                'to_do_count': 0,
            },
        })

    def test_none_input_raises(self):
        with self.assertRaises(TypeError):
            classify(None, NOW)

    def test_now_must_be_datetime(self):
        with self.assertRaises(TypeError):
            classify([], '2025-03-10')

    def test_malformed_records_are_skipped(self):
        good = story('ok', status=Status.TODO, duration=8, due_date=NOW + timedelta(days=5))
        bad_hours = story('bad', status=Status.TODO, duration=float('nan'))
        bad_status = story('bad-status', status=['In progress'], duration=8)
        bad_priority = story('bad-priority', status=Status.TODO, priority={'level': 'high'}, duration=8)
        with self.assertLogs('analysis.classifier', level='WARNING') as logs:
            report = classify([good, {'id': 'dict'}, bad_hours, None, bad_status, bad_priority], NOW)
        self.assertEqual(ids(report.need_to_start), ['ok'])
        self.assertEqual(report.summary.total_active, 1)
        self.assertEqual(len(logs.records), 5)

    def test_due_today_story_ranks_with_overdue_ceiling(self):
        # six hours past due rounds to 0 days: not overdue, but scored at the ceiling
        today = story('today', status=Status.TODO, duration=8, due_date=NOW - timedelta(hours=6))
        later = story('later', status=Status.TODO, duration=8, due_date=NOW + timedelta(days=5))
        report = classify([later, today], NOW)
        self.assertEqual(report.overdue, [])
        self.assertEqual(report.at_risk, [])
        self.assertEqual(ids(report.need_to_start), ['today', 'later'])
        first = report.need_to_start[0]
        self.assertEqual(first.days_until_due, 0)
        self.assertEqual(first.urgency_score, 2 * 1 * 1000)
        self.assertAlmostEqual(report.need_to_start[1].urgency_score, 2 * 1 * 8 / 5)

    def test_accepts_generator(self):
        s = story('G', status=Status.TODO, duration=8, due_date=NOW + timedelta(days=5))
        report = classify((x for x in [s]), NOW)
        self.assertEqual(ids(report.need_to_start), ['G'])

    def test_report_str(self):
        s = story('S', status=Status.TODO, duration=8, due_date=NOW + timedelta(days=5))
        text = str(classify([s], NOW))
        self.assertIn('Active: 1', text)
        self.assertIn('To Do: 1', text)


if __name__ == '__main__':
    unittest.main()
