"""
Tests for the Response Validator

These tests verify check evaluation:
- passing, failing and skipped checks
- absent or malformed responses never raise

Run with: python -m pytest tests/test_checks.py -v
"""

import grpc

from cacheload.protocol.messages import CacheMethod, Response
from cacheload.workload.checks import (
    DELETE_CHECKS,
    SET_CHECKS,
    Check,
    CheckOutcome,
    evaluate,
    get_checks,
)
from cacheload.workload.keys import encode_value


def outcomes(results):
    return {r.name: r.outcome for r in results}


def get_response(message=None, status=grpc.StatusCode.OK):
    return Response(method=CacheMethod.GET, status=status, message=message)


class TestEvaluate:
    """Test the generic evaluation rules."""

    def test_results_in_order(self):
        """Test one result per check, in the given order."""
        checks = (Check("a", lambda r: True), Check("b", lambda r: False))
        results = evaluate(None, checks)
        assert [r.name for r in results] == ["a", "b"]
        assert [r.outcome for r in results] == [CheckOutcome.PASSED, CheckOutcome.FAILED]

    def test_raising_predicate_fails(self):
        """Test a predicate that raises is recorded as failed."""
        def boom(response):
            raise AttributeError("no message")

        [result] = evaluate(None, (Check("boom", boom),))
        assert result.outcome is CheckOutcome.FAILED
        assert "AttributeError" in result.detail
        assert not result.passed

    def test_dependent_check_skipped(self):
        """Test a check whose requirement failed is skipped."""
        checks = (
            Check("first", lambda r: False),
            Check("second", lambda r: True, requires=("first",)),
        )
        results = evaluate(None, checks)
        assert outcomes(results)["second"] is CheckOutcome.SKIPPED
        assert "first" in results[1].detail

    def test_dependent_check_runs_after_pass(self):
        """Test a check whose requirement passed is evaluated."""
        checks = (
            Check("first", lambda r: True),
            Check("second", lambda r: True, requires=("first",)),
        )
        assert outcomes(evaluate(None, checks))["second"] is CheckOutcome.PASSED

    def test_truthy_values_pass(self):
        """Test predicates returning truthy non-bools pass."""
        [result] = evaluate(None, (Check("truthy", lambda r: "yes"),))
        assert result.passed


class TestSetAndDeleteChecks:
    """Test the Set and Delete check sets."""

    def test_set_ok(self):
        response = Response(CacheMethod.SET, grpc.StatusCode.OK, {"success": True})
        assert outcomes(evaluate(response, SET_CHECKS)) == {
            "set status is OK": CheckOutcome.PASSED,
        }

    def test_set_error_status(self):
        response = Response(CacheMethod.SET, grpc.StatusCode.ABORTED, error="could not set")
        assert outcomes(evaluate(response, SET_CHECKS)) == {
            "set status is OK": CheckOutcome.FAILED,
        }

    def test_delete_ok(self):
        response = Response(CacheMethod.DELETE, grpc.StatusCode.OK, {"success": True})
        assert outcomes(evaluate(response, DELETE_CHECKS)) == {
            "delete status is OK": CheckOutcome.PASSED,
        }

    def test_absent_response(self):
        """Test a missing response fails instead of raising."""
        assert outcomes(evaluate(None, DELETE_CHECKS)) == {
            "delete status is OK": CheckOutcome.FAILED,
        }


class TestGetChecks:
    """Test the Get check set."""

    def test_all_pass(self):
        """Test a found value that decodes to the key passes everything."""
        response = get_response({"found": True, "value": encode_value("hello-5-0")})
        results = evaluate(response, get_checks("hello-5-0"))
        assert all(r.passed for r in results)
        assert [r.name for r in results] == [
            "get status is OK",
            "value was found",
            "value matches",
        ]

    def test_value_mismatch(self):
        """Test a value of another key fails only the match check."""
        response = get_response({"found": True, "value": encode_value("hello-1-1")})
        assert outcomes(evaluate(response, get_checks("hello-5-0"))) == {
            "get status is OK": CheckOutcome.PASSED,
            "value was found": CheckOutcome.PASSED,
            "value matches": CheckOutcome.FAILED,
        }

    def test_undecodable_value(self):
        """Test a value that cannot be decoded fails the match check."""
        response = get_response({"found": True, "value": "%%%"})
        results = evaluate(response, get_checks("hello-5-0"))
        match = results[2]
        assert match.outcome is CheckOutcome.FAILED
        assert "DecodeError" in match.detail

    def test_found_but_no_value(self):
        """Test a found response without a value fails the match check."""
        response = get_response({"found": True})
        assert outcomes(evaluate(response, get_checks("k")))["value matches"] \
            is CheckOutcome.FAILED

    def test_not_found_status(self):
        """Test NOT_FOUND fails status and found, and skips the match."""
        response = get_response(status=grpc.StatusCode.NOT_FOUND)
        assert outcomes(evaluate(response, get_checks("k"))) == {
            "get status is OK": CheckOutcome.FAILED,
            "value was found": CheckOutcome.FAILED,
            "value matches": CheckOutcome.SKIPPED,
        }

    def test_found_false(self):
        """Test an OK response with found unset fails the found check."""
        response = get_response({"message": "missing"})
        assert outcomes(evaluate(response, get_checks("k"))) == {
            "get status is OK": CheckOutcome.PASSED,
            "value was found": CheckOutcome.FAILED,
            "value matches": CheckOutcome.SKIPPED,
        }

    def test_absent_response(self):
        """Test a missing response fails without raising."""
        results = evaluate(None, get_checks("k"))
        assert [r.outcome for r in results] == [
            CheckOutcome.FAILED,
            CheckOutcome.FAILED,
            CheckOutcome.SKIPPED,
        ]
