#!/usr/bin/env python3
import os

import aws_cdk as cdk

from stacks.secure_string_parameter_stack import SecureStringParameterStack

app = cdk.App()

stack_name = os.getenv("CDK_STACK_NAME", "SecureStringParameterStack")

SecureStringParameterStack(
    app,
    stack_name,
    env=cdk.Environment(
        account=os.getenv("CDK_DEFAULT_ACCOUNT"),
        region=os.getenv("CDK_DEFAULT_REGION", "us-east-1"),
    ),
)

app.synth()
