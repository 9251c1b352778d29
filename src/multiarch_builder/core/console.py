#!/usr/bin/env python3
"""Module to run console commands.

This module provides a class to run console commands on the orchestrating
machine itself. Remote hosts are reached through the runners package.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""
# built-in modules
import subprocess
import typing


class Console:
    """Class to run console commands.

    Attributes:
        shellVerbose (bool): The shell verbose flag.
        live_output (bool): The live output flag.
    """

    def __init__(self, shellVerbose: bool = True, live_output: bool = False) -> None:
        """Constructor of the Console class.

        Args:
            shellVerbose (bool): The shell verbose flag.
            live_output (bool): The live output flag.
        """
        self.shellVerbose = shellVerbose
        self.live_output = live_output

    def run(
        self,
        command: str,
        timeout: typing.Optional[int] = 60,
        secret: bool = False,
        prefix: str = "",
        env: typing.Optional[typing.Dict[str, str]] = None,
    ) -> typing.Tuple[int, str]:
        """Run shell command and return its exit code and output.

        Args:
            command (str): The shell command.
            timeout (int): The timeout in seconds, None waits forever.
            secret (bool): The flag to hide the command.
            prefix (str): The prefix of the live output lines.
            env (dict): The environment variables.

        Returns:
            tuple: The exit code and the combined stdout/stderr output.

        Raises:
            RuntimeError: If the shell command times out.
        """
        # Print the command if shellVerbose is True
        if self.shellVerbose and not secret:
            print(prefix + "> " + command, flush=True)

        proc = subprocess.Popen(
            command,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            shell=True,
            universal_newlines=True,
            bufsize=1,
            env=env,
        )

        try:
            if not self.live_output:
                outs, errs = proc.communicate(timeout=timeout)
            else:
                outs = []
                for stdout_line in iter(
                    lambda: proc.stdout.readline()
                    .encode("utf-8", errors="replace")
                    .decode("utf-8", errors="replace"),
                    "",
                ):
                    print(prefix + stdout_line, end="")
                    outs.append(stdout_line)
                outs = "".join(outs)
                proc.stdout.close()
                proc.wait(timeout=timeout)
        except subprocess.TimeoutExpired as exc:
            proc.kill()
            raise RuntimeError("Console script timeout") from exc

        return proc.returncode, outs.strip()
