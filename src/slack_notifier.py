"""
Slack summary of a submission run, posted through an incoming webhook.
"""

from typing import Dict, List, Optional

import requests


class SlackNotifier:
    def __init__(self, webhook_url: Optional[str], timeout: float = 10.0):
        self.webhook_url = webhook_url
        self.timeout = timeout

    def _configured(self) -> bool:
        if not self.webhook_url or "YOUR/WEBHOOK/URL" in self.webhook_url or "XXXXXX" in self.webhook_url:
            print("⚠️ Slack Webhook URL not configured - skipping notification")
            return False
        return True

    def build_summary_message(self, report: Dict) -> Dict:
        summary = report.get("summary", {})
        failed_trips: List[str] = [
            s.get("tripId") for s in report.get("submissions", []) if s.get("status") == "failed"
        ]
        color = "good" if not failed_trips else "warning"
        if summary.get("totalMatches") and not summary.get("successfulSubmissions"):
            color = "danger"

        fields = [
            {"type": "mrkdwn", "text": f"*Eligible matches:* {summary.get('totalMatches', 0)}"},
            {"type": "mrkdwn", "text": f"*Submitted:* {summary.get('successfulSubmissions', 0)}"},
            {"type": "mrkdwn", "text": f"*Failed:* {summary.get('failedSubmissions', 0)}"},
            {"type": "mrkdwn", "text": f"*Claimed:* ${summary.get('totalAmount', 0):,.2f}"},
        ]
        blocks = [
            {
                "type": "section",
                "text": {"type": "mrkdwn", "text": f"*Toll reimbursement run* ({report.get('submissionDate', '')})"},
            },
            {"type": "section", "fields": fields},
        ]
        if failed_trips:
            blocks.append({
                "type": "section",
                "text": {"type": "mrkdwn", "text": "*Failed trips:* " + ", ".join(failed_trips)},
            })
        return {
            "text": "Toll reimbursement submission summary",
            "attachments": [{"color": color, "blocks": blocks}],
        }

    def send_submission_summary(self, report: Dict) -> bool:
        """Post the run summary. Never raises; returns False when nothing was delivered."""
        if not self._configured():
            return False
        try:
            response = requests.post(self.webhook_url, json=self.build_summary_message(report), timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            print(f"❌ Slack Webhook error: {e}")
            return False
        print("✅ Slack summary sent")
        return True
