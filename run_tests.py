#!/usr/bin/env python
"""
Run the Grandstand test suite, optionally under coverage.

    python run_tests.py                       # every app
    python run_tests.py fans monetization     # selected apps
    python run_tests.py monetization.tests.CheckoutFinalizeTests --coverage
"""

import os
import sys
import argparse
import subprocess

APPS = ['users', 'fans', 'monetization', 'engagement']


def parse_args():
    parser = argparse.ArgumentParser(description='Run Grandstand tests')
    parser.add_argument('labels', nargs='*', help=f"Apps or test labels (default: {', '.join(APPS)})")
    parser.add_argument('--coverage', action='store_true', help='Measure coverage and print a report')
    parser.add_argument('--html', action='store_true', help='Also write an HTML coverage report to htmlcov/')
    parser.add_argument('--verbosity', type=int, default=1, help='Verbosity level (0-3)')
    parser.add_argument('--keepdb', action='store_true', help='Preserve test database between runs')
    return parser.parse_args()


def build_command(args):
    cmd = ['manage.py', 'test'] + (args.labels or APPS)
    cmd.extend(['--verbosity', str(args.verbosity)])
    if args.keepdb:
        cmd.append('--keepdb')

    # Coverage settings (source, omit) live in pyproject.toml
    if args.coverage:
        return ['coverage', 'run'] + cmd
    return [sys.executable] + cmd


def main():
    args = parse_args()
    os.environ['DJANGO_SETTINGS_MODULE'] = 'grandstand.test_settings'

    cmd = build_command(args)
    print(f"Running: {' '.join(cmd)}")
    result = subprocess.run(cmd)

    if args.coverage and result.returncode == 0:
        subprocess.run(['coverage', 'report'])
        if args.html:
            subprocess.run(['coverage', 'html'])
            print("HTML coverage report written to htmlcov/index.html")

    sys.exit(result.returncode)


if __name__ == '__main__':
    main()
