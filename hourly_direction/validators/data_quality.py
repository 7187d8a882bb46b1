# hourly_direction/validators/data_quality.py - Core validation infrastructure
"""
Data quality report container shared by the bar validators.
"""

from typing import Dict, List, Any


class DataQualityReport:
    """
    [CLASS SUMMARY]
    Purpose: Container for data quality validation results
    Attributes:
        - is_valid: Overall validity status
        - issues: List of identified issues
        - warnings: List of warnings (non-critical)
        - metrics: Dictionary of quality metrics
    """

    def __init__(self):
        """Initialize empty quality report"""
        self.is_valid = True
        self.issues: List[str] = []
        self.warnings: List[str] = []
        self.metrics: Dict[str, Any] = {}

    def add_issue(self, issue: str, critical: bool = True):
        """
        Add an issue to the report

        Parameters:
            - issue (str): Description of the issue
            - critical (bool): If True, marks report as invalid
        """
        if critical:
            self.issues.append(issue)
            self.is_valid = False
        else:
            self.warnings.append(issue)

    def add_metric(self, name: str, value: Any):
        self.metrics[name] = value

    def to_dict(self) -> Dict[str, Any]:
        """Convert report to dictionary"""
        return {
            'is_valid': self.is_valid,
            'issues': self.issues,
            'warnings': self.warnings,
            'metrics': self.metrics,
            'issue_count': len(self.issues),
            'warning_count': len(self.warnings)
        }
