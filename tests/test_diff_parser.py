import unittest

from ksnotify.diff_parser import (
    build_change_set,
    extract_resource_keys,
    has_changes,
    ingest_diff_blocks,
    parse_diff_text,
    remove_generation_fields,
    remove_skaffold_labels,
    split_diff_bodies,
)
from ksnotify.exceptions import DiffParseError
from ksnotify.models import RawDiffBlock

TWO_SERVICES_DIFF = (
    "diff -u -N /var/folders/fl/blahblah/v1.Service.test.test-app1 /var/folders/fl/blahblah/v1.Service.test.test-app1\n"
    "--- /var/folders/fl/blahblah/v1.Service.test.test-app\t2022-02-22 22:00:00.000000000 +0900\n"
    "+++ /var/folders/fl/blahblah/v1.Service.test.test-app\t2022-02-22 22:00:00.000000000 +0900\n"
    "ABCDE\n"
    "FGHIJ\n"
    "diff -u -N /var/folders/fl/blahblah/v1.Service.test.test-app2 /var/folders/fl/blahblah/v1.Service.test.test-app2\n"
    "--- /var/folders/fl/blahblah/v1.Service.test.test-app\t2022-02-22 22:00:00.000000000 +0900\n"
    "+++ /var/folders/fl/blahblah/v1.Service.test.test-app\t2022-02-22 22:00:00.000000000 +0900\n"
    "12345\n"
    "67890"
)


def make_block(key: str, lines: list) -> str:
    """Builds one `kubectl diff` section with a correctly sized hunk header."""
    old = sum(1 for line in lines if line[:1] in (" ", "-"))
    new = sum(1 for line in lines if line[:1] in (" ", "+"))
    header = (
        f"diff -u -N /tmp/LIVE-1/{key} /tmp/MERGED-2/{key}\n"
        f"--- /tmp/LIVE-1/{key}\t2024-01-01 00:00:00.000000000 +0000\n"
        f"+++ /tmp/MERGED-2/{key}\t2024-01-01 00:00:00.000000000 +0000\n"
        f"@@ -1,{old} +1,{new} @@\n"
    )
    return header + "\n".join(lines) + "\n"


class TestDiffIngest(unittest.TestCase):
    def test_parse_correctly_parse_diff(self):
        result = parse_diff_text(TWO_SERVICES_DIFF.replace("ABCDE", "+ABCDE").replace("12345", "-12345"))
        self.assertEqual(list(result), ["v1.Service.test.test-app1", "v1.Service.test.test-app2"])
        self.assertEqual(result["v1.Service.test.test-app1"], "+ABCDE\nFGHIJ")
        self.assertEqual(result["v1.Service.test.test-app2"], "-12345\n67890")

    def test_ingest_pairs_keys_and_bodies_in_source_order(self):
        blocks = ingest_diff_blocks(TWO_SERVICES_DIFF)
        self.assertEqual(blocks, [
            RawDiffBlock("v1.Service.test.test-app1", "ABCDE\nFGHIJ"),
            RawDiffBlock("v1.Service.test.test-app2", "12345\n67890"),
        ])

    def test_ingest_is_idempotent(self):
        self.assertEqual(ingest_diff_blocks(TWO_SERVICES_DIFF), ingest_diff_blocks(TWO_SERVICES_DIFF))

    def test_build_change_set_keeps_both_services(self):
        change_set = build_change_set(ingest_diff_blocks(TWO_SERVICES_DIFF))
        self.assertEqual(change_set, {
            "v1.Service.test.test-app1": "ABCDE\nFGHIJ",
            "v1.Service.test.test-app2": "12345\n67890",
        })

    def test_extract_resource_keys(self):
        self.assertEqual(
            extract_resource_keys(TWO_SERVICES_DIFF),
            ["v1.Service.test.test-app1", "v1.Service.test.test-app2"],
        )

    def test_split_diff_bodies(self):
        self.assertEqual(split_diff_bodies(TWO_SERVICES_DIFF), ["ABCDE\nFGHIJ", "12345\n67890"])

    def test_empty_input_yields_no_blocks(self):
        self.assertEqual(ingest_diff_blocks(""), [])
        self.assertEqual(ingest_diff_blocks("\n  \n"), [])
        self.assertEqual(parse_diff_text(""), {})

    def test_mismatched_headers_and_bodies_raise(self):
        diff = "stray text before any header\n" + TWO_SERVICES_DIFF
        with self.assertRaises(DiffParseError) as ctx:
            ingest_diff_blocks(diff)
        self.assertEqual(ctx.exception.details, {"headers": 2, "bodies": 3})

    def test_header_without_resource_path_raises(self):
        diff = "diff -u -N left right\n--- left\n+++ right\n+kind: Service\n"
        with self.assertRaises(DiffParseError):
            ingest_diff_blocks(diff)

    def test_truncated_hunk_raises(self):
        diff = (
            "diff -u -N /tmp/LIVE-1/v1.ConfigMap.ns.cm /tmp/MERGED-2/v1.ConfigMap.ns.cm\n"
            "--- /tmp/LIVE-1/v1.ConfigMap.ns.cm\t2024-01-01 00:00:00.000000000 +0000\n"
            "+++ /tmp/MERGED-2/v1.ConfigMap.ns.cm\t2024-01-01 00:00:00.000000000 +0000\n"
            "@@ -1,5 +1,5 @@\n"
            " apiVersion: v1\n"
        )
        with self.assertRaises(DiffParseError):
            ingest_diff_blocks(diff)

    def test_duplicate_keys_last_write_wins(self):
        blocks = [
            RawDiffBlock("v1.ConfigMap.ns.a", "+first"),
            RawDiffBlock("v1.ConfigMap.ns.b", "+other"),
            RawDiffBlock("v1.ConfigMap.ns.a", "+second"),
        ]
        change_set = build_change_set(blocks)
        self.assertEqual(change_set["v1.ConfigMap.ns.a"], "+second")
        self.assertEqual(list(change_set), ["v1.ConfigMap.ns.b", "v1.ConfigMap.ns.a"])

    def test_parse_real_kubectl_diff(self):
        diff = make_block("apps.v1.Deployment.default.web", [
            " apiVersion: apps/v1",
            " kind: Deployment",
            " metadata:",
            "-  generation: 3",
            "+  generation: 4",
            "   name: web",
            " spec:",
            "-  replicas: 1",
            "+  replicas: 2",
        ]) + make_block("v1.ConfigMap.default.settings", [
            " apiVersion: v1",
            " kind: ConfigMap",
            " metadata:",
            "-  generation: 1",
            "+  generation: 2",
            "   name: settings",
        ])
        result = parse_diff_text(diff)
        self.assertEqual(list(result), ["apps.v1.Deployment.default.web"])
        body = result["apps.v1.Deployment.default.web"]
        self.assertNotIn("generation", body)
        self.assertIn("+  replicas: 2", body)
        self.assertTrue(body.startswith("@@ -1,7 +1,7 @@"))


class TestNoiseFilter(unittest.TestCase):
    def test_has_changes_detects_existence_of_diff(self):
        self.assertTrue(has_changes("abc\ndef\n- hij\n+ klm"))

    def test_has_changes_detects_non_existence_of_diff(self):
        self.assertFalse(has_changes("abc\ndef\nhij"))

    def test_remove_generation_fields_removes_generation_fields(self):
        diff = "\n@@ -5,9 +5,7 @@\n-  generation: 18\n+  generation: 19\n   name: test-app\n   namespace: test\n"
        expected = "\n@@ -5,9 +5,7 @@\n   name: test-app\n   namespace: test\n"
        self.assertEqual(remove_generation_fields(diff), expected)

    def test_remove_generation_fields_do_nothing(self):
        diff = "\n@@ -5,9 +5,7 @@\n   name: test-app\n   namespace: test\n"
        self.assertEqual(remove_generation_fields(diff), diff)

    def test_remove_skaffold_labels_removes_skaffold_labels(self):
        diff = (
            "\n @@ -5,7 +5,6 @@\n"
            "     deployment.kubernetes.io/revision: 1\n"
            "   labels:\n"
            "     app: test-app\n"
            "-    skaffold.dev/run-id: 123\n"
            "   name: test-app\n"
            "   namespace: test\n"
        )
        expected = (
            "\n @@ -5,7 +5,6 @@\n"
            "     deployment.kubernetes.io/revision: 1\n"
            "   labels:\n"
            "     app: test-app\n"
            "   name: test-app\n"
            "   namespace: test\n"
        )
        self.assertEqual(remove_skaffold_labels(diff), expected)

    def test_remove_skaffold_labels_do_nothing(self):
        diff = (
            "\n @@ -5,7 +5,6 @@\n"
            "   labels:\n"
            "     app: test-app\n"
            "   name: test-app\n"
        )
        self.assertEqual(remove_skaffold_labels(diff), diff)

    def test_remove_skaffold_labels_removes_labels_key_and_value(self):
        diff = (
            "\n @@ -1,8 +1,6 @@\n"
            " apiVersion: batch/v1beta1\n"
            " kind: CronJob\n"
            " metadata:\n"
            "-  labels:\n"
            "-    skaffold.dev/run-id: 123\n"
            "   name: test-app\n"
            "   namespace: test\n"
            " spec:\n"
        )
        expected = (
            "\n @@ -1,8 +1,6 @@\n"
            " apiVersion: batch/v1beta1\n"
            " kind: CronJob\n"
            " metadata:\n"
            "   name: test-app\n"
            "   namespace: test\n"
            " spec:\n"
        )
        self.assertEqual(remove_skaffold_labels(diff), expected)

    def test_remove_skaffold_labels_with_and_without_label_key(self):
        diff = (
            "\n @@ -1,8 +1,6 @@\n"
            " metadata:\n"
            "   labels:\n"
            "     app: test-app\n"
            "-    skaffold.dev/run-id: 1234\n"
            "   name: test-app\n"
            "@@ -18,8 +16,6 @@\n"
            "           creationTimestamp: null\n"
            "-          labels:\n"
            "-            skaffold.dev/run-id: 123\n"
            "         spec:\n"
        )
        expected = (
            "\n @@ -1,8 +1,6 @@\n"
            " metadata:\n"
            "   labels:\n"
            "     app: test-app\n"
            "   name: test-app\n"
            "@@ -18,8 +16,6 @@\n"
            "           creationTimestamp: null\n"
            "         spec:\n"
        )
        self.assertEqual(remove_skaffold_labels(diff), expected)

    def test_remove_skaffold_labels_keeps_header_with_remaining_labels(self):
        diff = (
            " metadata:\n"
            "   labels:\n"
            "+    skaffold.dev/run-id: 123\n"
            "     app: test-app\n"
            "   name: test-app\n"
        )
        expected = (
            " metadata:\n"
            "   labels:\n"
            "     app: test-app\n"
            "   name: test-app\n"
        )
        self.assertEqual(remove_skaffold_labels(diff), expected)

    def test_filters_are_idempotent(self):
        diff = (
            " metadata:\n"
            "-  generation: 1\n"
            "+  generation: 2\n"
            "-  labels:\n"
            "-    skaffold.dev/run-id: 1\n"
            "   name: web\n"
            "+  replicas: 3\n"
        )
        once = remove_skaffold_labels(remove_generation_fields(diff))
        twice = remove_skaffold_labels(remove_generation_fields(once))
        self.assertEqual(once, twice)
        self.assertEqual(once, " metadata:\n   name: web\n+  replicas: 3\n")

    def test_skaffold_label_under_labels_block_is_removed(self):
        diff = make_block("apps.v1.Deployment.ns.web", [
            " metadata:",
            "   labels:",
            "     app: web",
            "+    skaffold.dev/run-id: 123",
            "   name: web",
            " spec:",
            "-  replicas: 1",
            "+  replicas: 2",
        ])
        result = parse_diff_text(diff, suppress_skaffold=True)
        body = result["apps.v1.Deployment.ns.web"]
        self.assertNotIn("skaffold.dev/run-id", body)
        self.assertIn("   labels:\n     app: web\n   name: web\n", body)
        self.assertIn("-  replicas: 1\n+  replicas: 2", body)

    def test_resource_with_only_skaffold_labels_is_dropped(self):
        diff = make_block("apps.v1.Deployment.ns.web", [
            " metadata:",
            "   labels:",
            "     app: web",
            "-    skaffold.dev/run-id: 122",
            "+    skaffold.dev/run-id: 123",
            "   name: web",
        ])
        self.assertEqual(parse_diff_text(diff, suppress_skaffold=True), {})
        # without suppression the label change is reported
        self.assertIn("apps.v1.Deployment.ns.web", parse_diff_text(diff, suppress_skaffold=False))


if __name__ == '__main__':
    unittest.main()
